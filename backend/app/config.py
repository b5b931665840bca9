#!/usr/bin/env python3
"""
Configuration management for the store assistant backend.
"""

import os
from typing import Optional

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


class ConfigurationError(ValueError):
    """Raised when the assistant cannot be brought into a chat-ready state."""


class Config:
    """Configuration class for the application."""

    # Gemini (Google) API Configuration
    # API_KEY is accepted for parity with the hosted demo environment
    GEMINI_API_KEY = os.getenv("GEMINI_API_KEY") or os.getenv("API_KEY")
    GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.0-flash")
    GEMINI_API_BASE = os.getenv("GEMINI_API_BASE", "https://generativelanguage.googleapis.com/v1beta")
    GEMINI_TEMPERATURE = float(os.getenv("GEMINI_TEMPERATURE", 0.4))
    GEMINI_MAX_OUTPUT_TOKENS = int(os.getenv("GEMINI_MAX_OUTPUT_TOKENS", 500))
    GEMINI_TIMEOUT = float(os.getenv("GEMINI_TIMEOUT", 60))

    # Redis Configuration
    REDIS_HOST = os.getenv("REDIS_HOST", "localhost")
    REDIS_PORT = int(os.getenv("REDIS_PORT", 6379))
    REDIS_DB = int(os.getenv("REDIS_DB", 0))
    CONFIG_STORAGE_KEY = os.getenv("CONFIG_STORAGE_KEY", "woogemini_config")

    # Application Configuration
    KNOWLEDGE_MODE = os.getenv("KNOWLEDGE_MODE", "documents").lower()
    MAX_PROMPT_PRODUCTS = 200
    DEFAULT_STORE_NAME = os.getenv("DEFAULT_STORE_NAME", "My WooCommerce Store")
    PUBLIC_BASE_URL = os.getenv("PUBLIC_BASE_URL", "http://localhost:8000")

    @classmethod
    def validate(cls, api_key: Optional[str] = None):
        """
        Validate that all required configuration is present.

        Args:
            api_key: Key held by an already built client; defaults to GEMINI_API_KEY
        """
        missing = []

        if not (api_key or cls.GEMINI_API_KEY):
            missing.append("GEMINI_API_KEY")
        if cls.KNOWLEDGE_MODE not in ("documents", "policies"):
            missing.append("KNOWLEDGE_MODE (documents|policies)")

        if missing:
            raise ConfigurationError(f"Missing required configuration: {', '.join(missing)}")

        return True

    @classmethod
    def debug_print(cls):
        print(f"[CONFIG] GEMINI_MODEL={cls.GEMINI_MODEL} set={bool(cls.GEMINI_API_KEY)}")
        print(f"[CONFIG] KNOWLEDGE_MODE={cls.KNOWLEDGE_MODE} MAX_PROMPT_PRODUCTS={cls.MAX_PROMPT_PRODUCTS}")
        print(f"[CONFIG] REDIS={cls.REDIS_HOST}:{cls.REDIS_PORT}/{cls.REDIS_DB} key={cls.CONFIG_STORAGE_KEY}")
