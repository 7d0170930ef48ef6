from .settings import (
    Settings,
    RetrievalSettings,
    EvolutionSettings,
    SynthesisSettings,
    InjectionSettings,
    EmbeddingSettings,
    get_settings,
)
