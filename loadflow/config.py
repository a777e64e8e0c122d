from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    model_config = {"env_prefix": "LOADFLOW_", "case_sensitive": False}

    # Solver defaults for callers that build criteria themselves
    default_max_iterations: int = 100
    default_tolerance: float = 1e-6

    # Compliance
    grid_code: str = "iec_60038"

    # N-1 contingency analysis
    run_contingency: bool = True
    contingency_workers: int = 1

    # Logging
    log_json: bool = False
    log_level: str = "INFO"


settings = Settings()
