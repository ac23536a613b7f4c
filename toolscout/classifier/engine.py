"""
Classification Engine.

Builds the prompt for a discovered tool, invokes the selected LLM through the
resilience layer and turns the reply into a validated TemplateDecision.
"""

import json
import logging
from typing import Dict, Optional

from toolscout.classifier.models import MCPPluginConfig, PluginTemplate, TemplateDecision
from toolscout.classifier.parser import parse_model_response, validate_decision
from toolscout.classifier.prompt import build_prompt
from toolscout.classifier.providers import LLMProvider, create_provider
from toolscout.config import Settings
from toolscout.sources.models import DiscoveredTool
from toolscout.utils.resilience import with_retry


class ClassificationEngine:
    """
    Classify discovered tools into plugin templates.

    The provider is resolved once, when the engine is created, so every
    classification in a run goes to the same model.
    """

    def __init__(self, settings: Settings, provider: Optional[str] = None,
                 model: Optional[str] = None, llm: Optional[LLMProvider] = None):
        """
        Initialize the engine.

        Args:
            settings: Resolved settings
            provider: Explicit provider name, wins over AI_PROVIDER and key detection
            model: Explicit model name
            llm: Ready-made provider instance (skips selection entirely)
        """
        self.settings = settings
        self.llm = llm or create_provider(settings, provider=provider, model=model)
        self.policy = settings.retry_policy()
        self.logger = logging.getLogger(__name__)

    def provider_info(self) -> Dict[str, str]:
        return {"provider": self.llm.name, "model": self.llm.model}

    async def classify(self, tool: DiscoveredTool) -> TemplateDecision:
        """
        Classify a single tool.

        Raises:
            ResponseParseError: the reply is not JSON
            ResponseValidationError: the JSON is not a consistent decision
            AuthenticationError, RateLimitedError, TransientNetworkError:
                provider failures that survived the retry policy
        """
        prompt = build_prompt(tool, readme_budget=self.settings.readme_char_budget)
        self.logger.debug(f"Classifying {tool.id} with {self.llm.name}/{self.llm.model}")

        text = await with_retry(
            lambda: self.llm.invoke(prompt),
            self.policy,
            description=f"{self.llm.name} classification of {tool.name}",
        )

        data = parse_model_response(text, provider=self.llm.name)
        decision = validate_decision(data, raw_response=text)
        self._cross_check(tool, decision)
        return decision

    def _cross_check(self, tool: DiscoveredTool, decision: TemplateDecision) -> None:
        """Log decisions that disagree with what discovery observed; the model's choice stands."""
        if decision.template.is_mcp and not tool.supports_target_protocol:
            self.logger.warning(
                f"{tool.name}: classified as {decision.template.value} but no MCP support was detected"
            )
        elif not decision.template.is_mcp and tool.supports_target_protocol:
            self.logger.warning(
                f"{tool.name}: MCP support detected but classified as {decision.template.value}"
            )

        detected = tool.pre_detected_connection
        if (detected is not None and decision.template == PluginTemplate.MCP_HTTP
                and detected.type == "stdio"):
            self.logger.info(f"{tool.name}: model chose HTTP over the detected stdio launcher")

    @staticmethod
    def build_quick_connection_payload(decision: TemplateDecision) -> Optional[str]:
        """
        Minimal connection-only JSON document for a protocol decision.

        Returns:
            ``{"mcpServers": {identifier: connection}}`` as JSON text, or
            None for non-protocol templates
        """
        if not decision.template.is_mcp or not isinstance(decision.config, MCPPluginConfig):
            return None

        connection = decision.config.connection.model_dump(mode="json", by_alias=True, exclude_none=True)
        return json.dumps({"mcpServers": {decision.config.identifier: connection}}, indent=2)
