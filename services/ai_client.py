# Copyright (c) Microsoft. All rights reserved.

"""Azure OpenAI chat client construction for the Agent Framework agents."""

import logging
import os

from agent_framework.azure import AzureOpenAIChatClient
from azure.identity import DefaultAzureCredential

logger = logging.getLogger(__name__)

DEFAULT_API_VERSION = "2024-05-01-preview"


def create_chat_client() -> AzureOpenAIChatClient:
    """
    Create an Azure OpenAI chat client from environment settings.

    Environment variables used:
    - AZURE_OPENAI_ENDPOINT: Resource endpoint (required)
    - AZURE_OPENAI_CHAT_DEPLOYMENT_NAME: Model deployment (required)
    - AZURE_OPENAI_API_KEY: Key auth; when unset DefaultAzureCredential is used
    - AZURE_OPENAI_API_VERSION: Defaults to 2024-05-01-preview
    """
    endpoint = os.environ.get("AZURE_OPENAI_ENDPOINT")
    deployment_name = os.environ.get("AZURE_OPENAI_CHAT_DEPLOYMENT_NAME")
    if not endpoint or not deployment_name:
        raise ValueError(
            "Azure OpenAI configuration is missing. Set AZURE_OPENAI_ENDPOINT "
            "and AZURE_OPENAI_CHAT_DEPLOYMENT_NAME environment variables."
        )

    api_version = os.environ.get("AZURE_OPENAI_API_VERSION", DEFAULT_API_VERSION)
    api_key = os.environ.get("AZURE_OPENAI_API_KEY")
    if api_key:
        return AzureOpenAIChatClient(
            endpoint=endpoint,
            deployment_name=deployment_name,
            api_version=api_version,
            api_key=api_key,
        )

    logger.info("AZURE_OPENAI_API_KEY not set, using DefaultAzureCredential")
    return AzureOpenAIChatClient(
        endpoint=endpoint,
        deployment_name=deployment_name,
        api_version=api_version,
        credential=DefaultAzureCredential(),
    )
