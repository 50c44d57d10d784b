from shelf_catalog.llm_providers.client import (
    GeminiClient,
    InferenceClient,
    OllamaClient,
    OpenAIClient,
    create_inference_client,
    resolve_inference_client,
)

__all__ = [
    "GeminiClient",
    "InferenceClient",
    "OllamaClient",
    "OpenAIClient",
    "create_inference_client",
    "resolve_inference_client",
]
