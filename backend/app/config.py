from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Classification
    min_content_length: int = 100
    campaign_lookahead_chars: int = 500
    entity_window_chars: int = 300
    table_title_lookback_chars: int = 100
    series_context_chars: int = 100

    # Distribution slices are not required to sum to 100 unless strict mode is on
    strict_distribution_sum: bool = False
    distribution_sum_tolerance: float = 5.0

    # App
    allowed_origins: str = "http://localhost:3000"
    rate_limit_per_hour: int = 120
    log_level: str = "INFO"

    @property
    def origins_list(self) -> list[str]:
        return [o.strip() for o in self.allowed_origins.split(",")]

    class Config:
        env_file = ".env"


settings = Settings()
