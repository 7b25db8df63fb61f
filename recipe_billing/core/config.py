from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file='.env', extra='ignore', populate_by_name=True)

    app_name: str = 'Recipe Billing API'
    environment: str = 'development'
    debug: bool = True
    log_level: str = 'INFO'

    database_url: str = 'sqlite:///./recipe_billing.db'
    jwt_secret_key: str = Field('change-me', validation_alias=AliasChoices('JWT_SECRET_KEY', 'JWT_SECRET'))
    jwt_algorithm: str = 'HS256'
    jwt_expire_minutes: int = 60 * 24

    # Checkout provider (paylink based)
    billing_api_key: str = Field('', validation_alias=AliasChoices('BILLING_API_KEY', 'APIKEY'))
    billing_base_url: str = Field('', validation_alias=AliasChoices('BILLING_BASE_URL', 'ACTALINK_BASE_URL'))
    paylink_basic_id: str = Field('', validation_alias=AliasChoices('PAYLINK_BASIC_ID', 'PAYLINK_ID_1'))
    paylink_pro_id: str = Field('', validation_alias=AliasChoices('PAYLINK_PRO_ID', 'PAYLINK_ID_2'))
    checkout_success_url: str = 'https://google.com'
    billing_timeout_seconds: int = 10

    checkout_poll_seconds: int = 5
    session_cleanup_seconds: int = 60 * 60
    run_background_jobs: bool = True

    recipes_api_url: str = 'https://dummyjson.com/recipes'
    recipes_timeout_seconds: int = 10

    cors_origins: str = 'http://localhost:3000'
    rate_limit_requests: int = 100
    rate_limit_window_seconds: int = 15 * 60
    # honor X-Forwarded-For only when a known proxy sits in front
    trust_proxy: bool = False

    @property
    def is_production(self) -> bool:
        return self.environment == 'production'

    @property
    def billing_configured(self) -> bool:
        return all([self.billing_api_key, self.billing_base_url, self.paylink_basic_id, self.paylink_pro_id])

    @property
    def cors_origin_list(self) -> list[str]:
        if self.is_production and 'cors_origins' not in self.model_fields_set:
            return []
        return [o.strip() for o in self.cors_origins.split(',') if o.strip()]


settings = Settings()
