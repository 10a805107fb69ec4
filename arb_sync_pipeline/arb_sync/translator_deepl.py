from __future__ import annotations
import logging
import random
import threading
import time
from typing import Any, Dict, List, Optional

import requests

from .errors import TranslationError, TranslationErrorKind
from .lang import source_code
from .placeholder_lock import PH_TAG
from .translator_base import Translator

ENDPOINT_FREE = "https://api-free.deepl.com"
ENDPOINT_PRO = "https://api.deepl.com"

RETRYABLE = {TranslationErrorKind.RATE_LIMITED, TranslationErrorKind.NETWORK, TranslationErrorKind.TIMEOUT}


def endpoint_for_key(api_key: str) -> str:
    # DeepL free-plan keys carry the ":fx" suffix
    return ENDPOINT_FREE if api_key.endswith(":fx") else ENDPOINT_PRO


def _raise_for_status(resp) -> None:
    code = resp.status_code
    if code == 200:
        return
    body = (getattr(resp, "text", "") or "")[:200]
    if code in (429, 456):  # 456: character quota exceeded
        raise TranslationError(TranslationErrorKind.RATE_LIMITED, f"HTTP {code}: {body}")
    if code in (401, 403):
        raise TranslationError(TranslationErrorKind.UNAUTHORIZED, f"HTTP {code}: {body}")
    if code >= 500:
        raise TranslationError(TranslationErrorKind.NETWORK, f"HTTP {code}: {body}")
    raise TranslationError(TranslationErrorKind.INVALID_RESPONSE, f"HTTP {code}: {body}")


def _json_or_error(resp) -> Any:
    try:
        return resp.json()
    except ValueError as e:
        raise TranslationError(TranslationErrorKind.INVALID_RESPONSE, f"response is not JSON: {e}") from e


class DeepLTranslator(Translator):
    def __init__(
        self,
        api_key: str,
        timeout: float = 30.0,
        qps: float = 0.0,
        max_retries: int = 0,
        backoff_base: float = 1.5,
        endpoint: Optional[str] = None,
        session: Any = None,
        logger: logging.Logger | None = None,
    ):
        if not api_key:
            raise TranslationError(TranslationErrorKind.UNAUTHORIZED, "DeepL API key is not set")
        self.api_key = api_key
        self.endpoint = (endpoint or endpoint_for_key(api_key)).rstrip("/")
        self.timeout = timeout
        self.qps = qps
        self.max_retries = max_retries
        self.backoff_base = backoff_base
        self.http = session or requests
        self.logger = logger or logging.getLogger("arb-sync")
        self._last_call = 0.0
        self._qps_lock = threading.Lock()

    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"DeepL-Auth-Key {self.api_key}"}

    def _respect_qps(self):
        if self.qps <= 0:
            return
        min_interval = 1.0 / self.qps
        with self._qps_lock:
            dt = time.time() - self._last_call
            if dt < min_interval:
                time.sleep(min_interval - dt)
            self._last_call = time.time()

    def _call(self, method: str, path: str, **kwargs) -> Any:
        self._respect_qps()
        url = f"{self.endpoint}{path}"
        try:
            resp = getattr(self.http, method)(url, headers=self._headers(), timeout=self.timeout, **kwargs)
        except requests.Timeout as e:
            raise TranslationError(TranslationErrorKind.TIMEOUT, f"no response within {self.timeout}s") from e
        except requests.RequestException as e:
            raise TranslationError(TranslationErrorKind.NETWORK, str(e)) from e
        _raise_for_status(resp)
        return _json_or_error(resp)

    def translate(self, text: str, source_lang: str, target_lang: str) -> str:
        body = {
            "text": [text],
            "source_lang": source_code(source_lang),
            "target_lang": target_lang,
            "tag_handling": "xml",
            "ignore_tags": [PH_TAG],
        }
        attempt = 0
        while True:
            try:
                data = self._call("post", "/v2/translate", json=body)
                break
            except TranslationError as e:
                if e.kind not in RETRYABLE or attempt >= self.max_retries:
                    raise
                sleep = (self.backoff_base ** attempt) + random.uniform(0, 0.6)
                self.logger.warning(f"DeepL request failed ({e}); retrying in {sleep:.1f}s")
                time.sleep(sleep)
                attempt += 1

        translations = data.get("translations") if isinstance(data, dict) else None
        if not isinstance(translations, list) or not translations:
            raise TranslationError(TranslationErrorKind.INVALID_RESPONSE, f"no translation in response: {str(data)[:200]}")
        out = translations[0].get("text") if isinstance(translations[0], dict) else None
        if not isinstance(out, str):
            raise TranslationError(TranslationErrorKind.INVALID_RESPONSE, f"unexpected response: {str(data)[:200]}")
        return out

    def usage(self) -> Dict[str, Any]:
        return self._call("get", "/v2/usage")

    def languages(self, language_type: str = "source") -> List[Dict[str, Any]]:
        return self._call("get", "/v2/languages", params={"type": language_type})
