import os


class Settings:
    def __init__(self):
        self.app_name = "Freelance Ledger"
        self.api_version = "1.0.0"
        self.environment = os.getenv("LEDGER_ENVIRONMENT", "development")
        self.secret_key = os.getenv("LEDGER_SECRET_KEY", "CHANGE_ME")
        self.SECRET_KEY = self.secret_key
        self.access_token_expire_minutes = int(os.getenv("LEDGER_ACCESS_TOKEN_EXPIRE_MINUTES", "30"))
        self.ACCESS_TOKEN_EXPIRE_MINUTES = self.access_token_expire_minutes
        self.database_url = os.getenv("LEDGER_DATABASE_URL", "sqlite:///./ledger.db")
        self.log_level = os.getenv("LEDGER_LOG_LEVEL", "INFO")
        self.log_format = os.getenv("LEDGER_LOG_FORMAT", "pretty")
        self.default_due_days = int(os.getenv("LEDGER_DEFAULT_DUE_DAYS", "30"))
        self.invoice_deletion_policy = os.getenv("LEDGER_INVOICE_DELETION_POLICY", "block")
        self.currency = os.getenv("LEDGER_CURRENCY", "USD")


_settings_instance = None


def get_settings():
    """Return a singleton Settings instance."""
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = Settings()
    return _settings_instance
