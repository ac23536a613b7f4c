"""
Classification Engine component.

Classify discovered tools into plugin templates with an LLM.
"""

from toolscout.classifier.engine import ClassificationEngine
from toolscout.classifier.models import (
    DiscoveryResult, GeneratedConfig, MCPPluginConfig, PluginTemplate, StandardPluginConfig, TemplateDecision
)
from toolscout.classifier.providers import ProviderKind, select_provider

__all__ = [
    "ClassificationEngine", "DiscoveryResult", "GeneratedConfig", "MCPPluginConfig",
    "PluginTemplate", "ProviderKind", "StandardPluginConfig", "TemplateDecision", "select_provider",
]
