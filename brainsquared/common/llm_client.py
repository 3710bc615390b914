"""
Provider-agnostic LLM client for Brain Squared.

Supports OpenRouter, Anthropic, OpenAI, and Google Gemini with a shared
text-generation interface, in both blocking and token-streaming form.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterator, List, Optional

from .errors import LLMUnavailable
from .stream_lines import iter_sse_json

logger = logging.getLogger("brainsquared.common.llm_client")


class LLMClient:
    """Unified text generation client across LLM providers."""

    def __init__(
        self,
        provider: str = "openrouter",
        model: str = "",
        openrouter_api_key: Optional[str] = None,
        anthropic_api_key: Optional[str] = None,
        openai_api_key: Optional[str] = None,
        google_api_key: Optional[str] = None,
        openrouter_base_url: str = "https://openrouter.ai/api/v1",
        app_base_url: str = "http://localhost:3000",
        app_title: str = "Brain Squared",
    ) -> None:
        self.provider = (provider or "openrouter").lower()
        self.model = model
        self._client = None

        if self.provider == "openrouter":
            if not openrouter_api_key:
                logger.info("%s API key not provided, LLM client unavailable", self.provider)
                return
            try:
                import httpx

                self._client = httpx.Client(
                    base_url=openrouter_base_url,
                    headers={
                        "Authorization": f"Bearer {openrouter_api_key}",
                        "HTTP-Referer": app_base_url,
                        "X-Title": app_title,
                    },
                )
            except Exception as e:
                logger.warning("Failed to initialize OpenRouter client: %s", e)
            return

        if self.provider == "anthropic":
            if not anthropic_api_key:
                logger.info("%s API key not provided, LLM client unavailable", self.provider)
                return
            try:
                import anthropic

                self._client = anthropic.Anthropic(api_key=anthropic_api_key)
            except ImportError:
                logger.warning("anthropic package not installed")
            except Exception as e:
                logger.warning("Failed to initialize Anthropic client: %s", e)
            return

        if self.provider == "openai":
            if not openai_api_key:
                logger.info("%s API key not provided, LLM client unavailable", self.provider)
                return
            try:
                from openai import OpenAI

                self._client = OpenAI(api_key=openai_api_key)
            except ImportError:
                logger.warning("openai package not installed")
            except Exception as e:
                logger.warning("Failed to initialize OpenAI client: %s", e)
            return

        if self.provider == "google":
            if not google_api_key:
                logger.info("%s API key not provided, LLM client unavailable", self.provider)
                return
            try:
                import google.generativeai as genai

                genai.configure(api_key=google_api_key)
                self._client = genai  # Store the module, not a model instance
                self._google_models = {}  # Cache models by system prompt hash
            except ImportError:
                logger.warning("google-generativeai package not installed")
            except Exception as e:
                logger.warning("Failed to initialize Gemini client: %s", e)
            return

        logger.warning("Unsupported LLM provider: %s", self.provider)

    @classmethod
    def from_config(cls, llm_config) -> "LLMClient":
        """Build a client for the provider selected in an LLMConfig."""
        return cls(
            provider=llm_config.provider,
            model=llm_config.model,
            openrouter_api_key=llm_config.openrouter_api_key or None,
            anthropic_api_key=llm_config.anthropic_api_key or None,
            openai_api_key=llm_config.openai_api_key or None,
            google_api_key=llm_config.google_api_key or None,
            openrouter_base_url=llm_config.openrouter_base_url,
            app_base_url=llm_config.app_base_url,
            app_title=llm_config.app_title,
        )

    @property
    def is_available(self) -> bool:
        return self._client is not None

    def _chat_messages(self, prompt: str, system: Optional[str]) -> List[Dict[str, str]]:
        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})
        return messages

    def _google_model(self, system: Optional[str]):
        import hashlib

        cache_key = hashlib.md5((system or "").encode()).hexdigest()
        if cache_key not in self._google_models:
            kwargs = {"model_name": self.model}
            if system:
                kwargs["system_instruction"] = system
            self._google_models[cache_key] = self._client.GenerativeModel(**kwargs)
        return self._google_models[cache_key]

    def _openrouter_body(
        self,
        prompt: str,
        system: Optional[str],
        max_tokens: int,
        temperature: float,
        json_mode: bool,
        stream: bool,
    ) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "model": self.model,
            "messages": self._chat_messages(prompt, system),
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if json_mode:
            body["response_format"] = {"type": "json_object"}
        if stream:
            body["stream"] = True
        return body

    def generate(
        self,
        prompt: str,
        *,
        system: Optional[str] = None,
        max_tokens: int = 512,
        temperature: float = 0.7,
        json_mode: bool = False,
        timeout: float = 30.0,
    ) -> str:
        if not self.is_available:
            raise LLMUnavailable("LLM client is not available")

        if self.provider == "openrouter":
            response = self._client.post(
                "/chat/completions",
                json=self._openrouter_body(prompt, system, max_tokens, temperature, json_mode, False),
                timeout=timeout,
            )
            response.raise_for_status()
            data = response.json()
            choices = data.get("choices") or [{}]
            return ((choices[0].get("message") or {}).get("content") or "").strip()

        if self.provider == "anthropic":
            kwargs = {}
            if system:
                kwargs["system"] = system
            response = self._client.messages.create(
                model=self.model,
                max_tokens=max_tokens,
                temperature=temperature,
                messages=[{"role": "user", "content": prompt}],
                timeout=timeout,
                **kwargs,
            )
            return response.content[0].text.strip()

        if self.provider == "openai":
            kwargs = {}
            if json_mode:
                kwargs["response_format"] = {"type": "json_object"}
            response = self._client.chat.completions.create(
                model=self.model,
                max_tokens=max_tokens,
                temperature=temperature,
                messages=self._chat_messages(prompt, system),
                timeout=timeout,
                **kwargs,
            )
            return (response.choices[0].message.content or "").strip()

        if self.provider == "google":
            generation_config = {"max_output_tokens": max_tokens, "temperature": temperature}
            if json_mode:
                generation_config["response_mime_type"] = "application/json"
            response = self._google_model(system).generate_content(
                prompt,
                generation_config=generation_config,
                request_options={"timeout": timeout},
            )
            return response.text.strip()

        raise LLMUnavailable(f"Unsupported LLM provider: {self.provider}")

    def stream(
        self,
        prompt: str,
        *,
        system: Optional[str] = None,
        max_tokens: int = 512,
        temperature: float = 0.7,
        timeout: float = 30.0,
    ) -> Iterator[str]:
        """Yield text fragments as the provider produces them."""
        if not self.is_available:
            raise LLMUnavailable("LLM client is not available")

        if self.provider == "openrouter":
            with self._client.stream(
                "POST",
                "/chat/completions",
                json=self._openrouter_body(prompt, system, max_tokens, temperature, False, True),
                timeout=timeout,
            ) as response:
                response.raise_for_status()
                for event in iter_sse_json(response.iter_bytes()):
                    for choice in event.get("choices") or []:
                        content = (choice.get("delta") or {}).get("content")
                        if content:
                            yield content
            return

        if self.provider == "anthropic":
            kwargs = {}
            if system:
                kwargs["system"] = system
            with self._client.messages.stream(
                model=self.model,
                max_tokens=max_tokens,
                temperature=temperature,
                messages=[{"role": "user", "content": prompt}],
                timeout=timeout,
                **kwargs,
            ) as stream:
                for text in stream.text_stream:
                    if text:
                        yield text
            return

        if self.provider == "openai":
            chunks = self._client.chat.completions.create(
                model=self.model,
                max_tokens=max_tokens,
                temperature=temperature,
                messages=self._chat_messages(prompt, system),
                timeout=timeout,
                stream=True,
            )
            for chunk in chunks:
                if chunk.choices and chunk.choices[0].delta.content:
                    yield chunk.choices[0].delta.content
            return

        if self.provider == "google":
            response = self._google_model(system).generate_content(
                prompt,
                generation_config={"max_output_tokens": max_tokens, "temperature": temperature},
                request_options={"timeout": timeout},
                stream=True,
            )
            for chunk in response:
                if chunk.text:
                    yield chunk.text
            return

        raise LLMUnavailable(f"Unsupported LLM provider: {self.provider}")
