"""
Base Stage Interface for ColdCopy generation stages
"""

from abc import ABC, abstractmethod
from typing import Dict, Any, Optional
import logging
import re
from datetime import datetime

from ..config.prompts import PromptManager
from ..config.settings import ConfigManager
from ..utils.llm_client import CompletionClient
from ..utils.data_manager import LocalDataManager


class BaseStage(ABC):
    """
    Abstract base class for ColdCopy generation stages.
    Provides completion access, prompt building and standard result dictionaries.
    """

    def __init__(
        self,
        config: Dict[str, Any],
        data_manager: Optional[LocalDataManager] = None,
        llm_client: Optional[Any] = None,
        prompt_manager: Optional[PromptManager] = None
    ):
        """
        Initialize the stage with configuration.

        Args:
            config: Configuration dictionary containing API keys, settings, etc.
            data_manager: Optional shared data manager instance. If not provided, creates a new one.
            llm_client: Optional completion client exposing ``complete(prompt, request_id)``
            prompt_manager: Optional prompt manager, built from the data directory otherwise
        """
        self.config = config
        class_name = self.__class__.__name__.replace('Stage', '')
        self.stage_name = re.sub('([a-z0-9])([A-Z])', r'\1_\2', class_name).lower()
        self.logger = logging.getLogger(f"coldcopy.{self.stage_name}")

        if llm_client is not None:
            self.llm_client = llm_client
        else:
            # Without a key the client raises CompletionError on first use.
            self.llm_client = CompletionClient(
                api_key=config.get('llm_api_key'),
                model=config.get('llm_model', 'deepseek-chat'),
                base_url=config.get('llm_base_url'),
                timeout_ms=config.get('ai_timeout_ms', 45000),
            )

        data_dir = config.get('data_dir', './coldcopy_data')
        if data_manager is not None:
            self.data_manager = data_manager
            self.logger.debug("Using shared data manager instance")
        else:
            self.data_manager = LocalDataManager(data_dir)
            self.logger.debug("Created new data manager instance")

        self.prompt_manager = prompt_manager or PromptManager(ConfigManager(data_dir))

    @abstractmethod
    def execute(self, context: Dict[str, Any]) -> Dict[str, Any]:
        """
        Execute the stage logic and return results.

        Args:
            context: Execution context containing input data

        Returns:
            Dictionary containing stage results and metadata
        """
        pass

    @abstractmethod
    def validate_input(self, context: Dict[str, Any]) -> bool:
        """
        Validate input data for this stage.

        Args:
            context: Execution context to validate

        Returns:
            True if input is valid, False otherwise
        """
        pass

    def call_llm(self, prompt: str, request_id: Optional[str] = None) -> str:
        """
        Send a prompt to the completion client.

        Args:
            prompt: Prompt text
            request_id: Correlation id for the request

        Returns:
            Raw completion text
        """
        self.logger.debug(f"Calling LLM [{request_id}] with prompt length: {len(prompt)}")

        try:
            response = self.llm_client.complete(prompt, request_id=request_id)
            self.logger.debug(f"LLM response length [{request_id}]: {len(response or '')}")
            return response or ''

        except Exception as e:
            self.logger.error(f"LLM call failed [{request_id}]: {str(e)}")
            raise

    def create_success_result(self, data: Dict[str, Any], context: Dict[str, Any]) -> Dict[str, Any]:
        return {
            'status': 'success',
            'stage': self.stage_name,
            'execution_id': context.get('execution_id'),
            'timestamp': datetime.now().isoformat(),
            'data': data
        }

    def create_skip_result(self, reason: str, context: Dict[str, Any]) -> Dict[str, Any]:
        """
        Create standardized skip result.

        Args:
            reason: Reason for skipping the stage
            context: Execution context

        Returns:
            Skip result dictionary
        """
        return {
            'status': 'skipped',
            'reason': reason,
            'stage': self.stage_name,
            'execution_id': context.get('execution_id'),
            'timestamp': datetime.now().isoformat()
        }
