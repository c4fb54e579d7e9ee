"""Pure batch domain: run DTOs and cron evaluation."""
