"""
Engine settings loaded from environment variables.

Uses Pydantic Settings for type-safe configuration with validation.
Every setting can be overridden via a MARKOWITZ_-prefixed environment
variable or a .env file (e.g. MARKOWITZ_DE_GENERATIONS=100).
"""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class EngineSettings(BaseSettings):
    """
    Numerical and solver configuration for the optimization engine.

    Defaults reproduce the reference behaviour of the engine; overriding them
    is mostly useful to speed up tests (fewer DE generations, smaller
    visualization clouds) or to pin a different cvxpy solver.
    """

    model_config = SettingsConfigDict(
        env_prefix="MARKOWITZ_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Logging Configuration
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )

    # Moment estimation
    covariance_ridge: float = Field(
        default=1e-8,
        ge=0.0,
        description="Constant added to every covariance diagonal entry",
    )

    # CVaR
    default_cvar_alpha: float = Field(
        default=0.95,
        gt=0.0,
        lt=1.0,
        description="CVaR confidence level used when the request does not set one",
    )

    # cvxpy solvers
    qp_solver: str = Field(
        default="CLARABEL",
        description="Primary cvxpy solver for the QP and CVaR programs",
    )
    fallback_solvers: list[str] = Field(
        default_factory=lambda: ["OSQP", "SCS"],
        description="Solvers tried in order when the primary one errors out",
    )
    solver_verbose: bool = Field(default=False, description="Pass verbose=True to cvxpy")

    # Objective selector grid
    grid_steps: int = Field(
        default=21,
        ge=1,
        description="Evenly spaced target returns probed by the objective selector",
    )
    grid_buffer_fraction: float = Field(
        default=0.25,
        ge=0.0,
        description="Grid extension beyond [min(mu), max(mu)] as a fraction of the span",
    )

    # Differential evolution
    de_min_population: int = Field(default=30, ge=4)
    de_population_multiplier: int = Field(default=10, ge=1)
    de_generations: int = Field(default=300, ge=0)
    de_mutation_factor: float = Field(default=0.6, gt=0.0, le=2.0)
    de_crossover_rate: float = Field(default=0.7, ge=0.0, le=1.0)
    de_repair_iterations: int = Field(default=4, ge=1)

    # Visualization
    visualization_samples: int = Field(
        default=5000,
        ge=0,
        description="Random portfolios drawn for the risk/return cloud",
    )

    @field_validator("log_level")
    @classmethod
    def _validate_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Invalid log level: {value}")
        return level


@lru_cache
def get_settings() -> EngineSettings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are loaded only once.

    Returns:
        EngineSettings instance with all configuration loaded.

    Example:
        >>> settings = get_settings()
        >>> settings.grid_steps
        21
    """
    return EngineSettings()
