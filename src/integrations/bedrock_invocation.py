"""
Amazon Bedrock Model Invocation Module

This module provides a simple interface for sending a single-turn prompt to a
Bedrock-hosted language model using the bedrock-runtime Converse API.

Usage:
    from integrations import bedrock_invocation

    response = bedrock_invocation.invoke_model(
        prompt="Extract the budget from: we can spend $50,000"
    )
    print(response)  # Model reply as a string
"""

import logging
import os
import time

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError

# Configure logging
logger = logging.getLogger(__name__)


# ============================================================================
# Custom Exception Classes
# ============================================================================

class ConfigurationError(Exception):
    """Raised when module configuration is invalid or missing."""
    pass


class ModelNotFoundException(Exception):
    """Raised when the configured Bedrock model cannot be found."""
    pass


class ThrottlingException(Exception):
    """Raised when Bedrock API requests are throttled or the quota is exhausted."""
    pass


class ValidationException(Exception):
    """Raised when input validation fails."""
    pass


class EmptyResponseException(Exception):
    """Raised when the model returns no text content."""
    pass


# ============================================================================
# Module-Level Configuration and Initialization
# ============================================================================

MAX_TOKENS = int(os.environ.get('LLM_MAX_TOKENS', '5000'))
TEMPERATURE = float(os.environ.get('LLM_TEMPERATURE', '0.7'))


def _read_model_id() -> str:
    """
    Read and validate BEDROCK_MODEL_ID from environment variables.

    Returns:
        str: The validated model identifier

    Raises:
        ConfigurationError: If BEDROCK_MODEL_ID is set but blank
    """
    model_id = os.environ.get('BEDROCK_MODEL_ID', 'amazon.nova-lite-v1:0').strip()

    if not model_id:
        raise ConfigurationError(
            "BEDROCK_MODEL_ID environment variable is blank. "
            "Set it to a Bedrock model ID or inference profile ARN."
        )

    logger.info(f"Bedrock model configured: {model_id}")
    return model_id


def _initialize_bedrock_client():
    """
    Initialize boto3 Bedrock runtime client with timeout configuration.

    Returns:
        boto3.client: Configured Bedrock runtime client
    """
    # No retries: a failed extraction is retried by the caller on the next poll
    client_config = Config(
        retries={
            'max_attempts': 0,
            'mode': 'standard'
        },
        connect_timeout=10,
        read_timeout=120
    )

    region = os.environ.get('AWS_REGION', os.environ.get('AWS_DEFAULT_REGION', 'us-west-2'))

    client = boto3.client(
        'bedrock-runtime',
        region_name=region,
        config=client_config
    )

    logger.info(
        f"Bedrock runtime client initialized: region={region}, "
        f"connect_timeout=10s, read_timeout=120s, max_attempts=0 (no retries)"
    )
    return client


# Initialize at module import time (reused across invocations)
try:
    MODEL_ID = _read_model_id()
    bedrock_client = _initialize_bedrock_client()
except ConfigurationError as e:
    logger.error(f"Module initialization failed: {e}")
    raise


# ============================================================================
# Core Model Invocation
# ============================================================================

def _extract_text(response: dict) -> str:
    """Join the text blocks of a Converse API response."""
    message = response.get('output', {}).get('message', {})
    blocks = message.get('content', []) or []
    return ''.join(block.get('text', '') for block in blocks if isinstance(block, dict))


def invoke_model(prompt: str) -> str:
    """
    Send a prompt to the configured Bedrock model and return its reply.

    Args:
        prompt: The input text to send to the model (required, non-empty string)

    Returns:
        str: The model's complete response text

    Raises:
        ValidationException: If prompt is invalid (empty or wrong type)
        ModelNotFoundException: If the configured model cannot be found
        ThrottlingException: If requests are throttled or the quota is exhausted
        EmptyResponseException: If the model returns no text
        ClientError: For other AWS service errors
    """
    start_time = time.time()

    if not prompt or not isinstance(prompt, str):
        raise ValidationException(
            f"Prompt must be a non-empty string. Got: {type(prompt).__name__} "
            f"with value: {repr(prompt)[:50]}"
        )

    logger.info(f"Invoking model: prompt_length={len(prompt)}, model_id={MODEL_ID}")

    try:
        response = bedrock_client.converse(
            modelId=MODEL_ID,
            messages=[
                {
                    'role': 'user',
                    'content': [{'text': prompt}],
                }
            ],
            inferenceConfig={
                'maxTokens': MAX_TOKENS,
                'temperature': TEMPERATURE,
            },
        )
    except ClientError as e:
        error_code = e.response.get('Error', {}).get('Code', 'Unknown')
        error_message = e.response.get('Error', {}).get('Message', str(e))

        # Map AWS errors to domain-specific exceptions
        if error_code == 'ResourceNotFoundException':
            logger.error(f"Model not found: model_id={MODEL_ID}, error={error_message}")
            raise ModelNotFoundException(
                f"Model not found: {MODEL_ID}. "
                f"Verify the model is enabled in this region. Error: {error_message}"
            )
        elif error_code in ('ThrottlingException', 'ServiceQuotaExceededException'):
            logger.error(f"Request throttled: {error_message}")
            raise ThrottlingException(
                f"Bedrock quota exceeded, wait or raise the quota: {error_message}"
            )
        else:
            logger.error(
                f"Model invocation failed: error_code={error_code}, "
                f"error_message={error_message}, model_id={MODEL_ID}"
            )
            raise

    content = _extract_text(response)
    if not content:
        logger.error(f"Empty response from model: stop_reason={response.get('stopReason')}")
        raise EmptyResponseException(f"Empty response from model {MODEL_ID}")

    execution_time = time.time() - start_time
    logger.info(
        f"Model invocation succeeded: "
        f"response_length={len(content)}, "
        f"stop_reason={response.get('stopReason')}, "
        f"execution_time={execution_time:.2f}s"
    )

    return content
