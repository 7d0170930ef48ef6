from typing import Optional
from functools import lru_cache
import math

from pydantic import BaseModel, Field, ValidationError, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from axon.domain.errors import ConfigurationError
from axon.domain.models import InjectionStrategy


class RetrievalSettings(BaseModel):
    """Retriever tuning"""
    default_limit: int = Field(10, gt=0)
    default_min_similarity: float = Field(0.7, ge=0.0, le=1.0, description="Index similarity cutoff")
    min_confidence: float = Field(0.3, ge=0.0, le=1.0, description="Index confidence filter")
    semantic_weight: float = Field(0.6, ge=0.0, le=1.0)
    freshness_weight: float = Field(0.2, ge=0.0, le=1.0)
    usage_weight: float = Field(0.1, ge=0.0, le=1.0)
    confidence_weight: float = Field(0.1, ge=0.0, le=1.0)
    enable_query_expansion: bool = True
    enable_diversity: bool = True
    max_context_age_days: int = Field(0, ge=0, description="0 means no limit; freshness then uses 365")

    @model_validator(mode="after")
    def _weights_sum_to_one(self) -> "RetrievalSettings":
        total = self.semantic_weight + self.freshness_weight + self.usage_weight + self.confidence_weight
        if not math.isclose(total, 1.0, abs_tol=1e-6):
            raise ValueError(f"re-ranking weights must sum to 1.0, got {total:.4f}")
        return self


class EvolutionSettings(BaseModel):
    temporal_decay_rate: float = Field(0.01, ge=0.0, description="Confidence lost per day of age")
    min_confidence_threshold: float = Field(0.3, ge=0.0, le=1.0)
    change_noise_floor: float = Field(0.01, ge=0.0, le=1.0)
    consolidation_threshold: float = Field(0.95, ge=0.0, le=1.0)


class SynthesisSettings(BaseModel):
    total_tokens: int = Field(8192, gt=0)
    response_reserve: int = Field(2048, ge=0)
    enable_compression: bool = True
    compression_threshold: float = Field(0.8, ge=0.0, le=1.0)

    @model_validator(mode="after")
    def _reserve_fits(self) -> "SynthesisSettings":
        if self.response_reserve >= self.total_tokens:
            raise ValueError("response_reserve must be smaller than total_tokens")
        return self


class InjectionSettings(BaseModel):
    default_strategy: InjectionStrategy = InjectionStrategy.HYBRID
    max_tokens: Optional[int] = Field(None, gt=0, description="Overrides the model context window")


class EmbeddingSettings(BaseModel):
    cache_ttl_seconds: int = Field(86400, gt=0)
    max_batch_size: int = Field(32, gt=0)
    dimension: int = Field(384, gt=0, description="Size of the built-in deterministic embeddings")


class Settings(BaseSettings):
    """Service configuration, read from AXON_* environment variables"""

    model_config = SettingsConfigDict(
        env_prefix="AXON_",
        env_nested_delimiter="__",
        env_file=".env",
        extra="ignore",
    )

    service_name: str = "axon-context-engine"
    log_level: str = "INFO"
    log_format: str = "json"
    model: str = Field("gpt-4", description="Completion model; sets the default prompt ceiling")
    enable_versioning: bool = True

    retrieval: RetrievalSettings = Field(default_factory=RetrievalSettings)
    evolution: EvolutionSettings = Field(default_factory=EvolutionSettings)
    synthesis: SynthesisSettings = Field(default_factory=SynthesisSettings)
    injection: InjectionSettings = Field(default_factory=InjectionSettings)
    embeddings: EmbeddingSettings = Field(default_factory=EmbeddingSettings)


@lru_cache()
def get_settings() -> Settings:
    """Load settings once; invalid environment values raise ConfigurationError"""
    try:
        return Settings()
    except ValidationError as e:
        errors = [f"{'.'.join(map(str, err['loc']))}: {err['msg']}" for err in e.errors()]
        raise ConfigurationError("invalid configuration", {"errors": errors}) from e
