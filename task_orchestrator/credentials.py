"""
Credential Store
================
API keys for model providers and tool services are looked up through a
chain of backends, most secure first:

1. System keyring (OS credential store)
2. Fernet-encrypted file keyed to this machine
3. Environment variables

Keys never appear in code, config files or log output.
"""

import base64
import getpass
import hashlib
import json
import logging
import os
import sys
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, List, Optional

import keyring
from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from keyring.errors import KeyringError

from .config import get_config_dir

logger = logging.getLogger(__name__)

SERVICE_NAME = "task_orchestrator"
KEY_DERIVATION_SALT = b"task_orchestrator_creds_v1"
CREDENTIALS_FILENAME = "credentials.enc"

# (service id, description) for every service this project can call
KNOWN_SERVICES = [
    ("groq", "Groq (fast Llama inference)"),
    ("mistral", "Mistral (Mistral Large)"),
    ("cerebras", "Cerebras (Llama fallback)"),
    ("deepseek", "DeepSeek (DeepSeek Chat)"),
    ("tavily", "Tavily (web search tool)"),
    ("replicate", "Replicate (image generation tool)"),
    ("google_tts", "Google Cloud Text-to-Speech (tts tool)"),
]


@dataclass(frozen=True)
class APICredential:
    """Credential holder whose repr never shows the key"""
    service: str
    _key: str

    def get_key(self) -> str:
        logger.debug(f"API key accessed for service: {self.service}")
        return self._key

    def __repr__(self) -> str:
        return f"APICredential(service={self.service}, key=****)"

    def __str__(self) -> str:
        return self.__repr__()


class CredentialBackend(ABC):
    """Storage backend for API keys"""

    @abstractmethod
    def get(self, service: str) -> Optional[str]:
        pass

    @abstractmethod
    def set(self, service: str, api_key: str) -> bool:
        pass

    @abstractmethod
    def delete(self, service: str) -> bool:
        pass

    @abstractmethod
    def list_services(self) -> List[str]:
        pass

    @property
    @abstractmethod
    def is_available(self) -> bool:
        pass


class KeyringBackend(CredentialBackend):
    """OS keychain via the keyring package"""

    def __init__(self):
        self._available: Optional[bool] = None

    @property
    def is_available(self) -> bool:
        if self._available is None:
            try:
                keyring.get_password(SERVICE_NAME, "__availability__")
                self._available = True
            except (KeyringError, RuntimeError) as e:
                logger.debug(f"Keyring unavailable: {e}")
                self._available = False
        return self._available

    def get(self, service: str) -> Optional[str]:
        if not self.is_available:
            return None
        try:
            return keyring.get_password(SERVICE_NAME, service)
        except KeyringError as e:
            logger.warning(f"Keyring lookup failed for {service}: {e}")
            return None

    def set(self, service: str, api_key: str) -> bool:
        if not self.is_available:
            return False
        try:
            keyring.set_password(SERVICE_NAME, service, api_key)
            logger.info(f"Stored credential in keyring for: {service}")
            return True
        except KeyringError as e:
            logger.error(f"Keyring store failed for {service}: {e}")
            return False

    def delete(self, service: str) -> bool:
        if not self.is_available:
            return False
        try:
            keyring.delete_password(SERVICE_NAME, service)
            return True
        except KeyringError:
            # Nothing stored for this service
            return True

    def list_services(self) -> List[str]:
        # keyring has no enumeration API
        return []


class EncryptedFileBackend(CredentialBackend):
    """Credentials file encrypted with a key derived from machine identity"""

    def __init__(self, directory=None):
        self._directory = directory or get_config_dir()
        self._path = self._directory / CREDENTIALS_FILENAME
        self._fernet: Optional[Fernet] = None
        self._init_encryption()

    @property
    def is_available(self) -> bool:
        return self._fernet is not None

    def _machine_fingerprint(self) -> bytes:
        parts = []
        if sys.platform == "linux":
            try:
                with open("/etc/machine-id", "r") as f:
                    parts.append(f.read().strip())
            except OSError:
                pass
        parts.append(getpass.getuser())
        parts.append(os.uname().nodename if hasattr(os, "uname") else "unknown")
        return hashlib.sha256(":".join(parts).encode()).digest()

    def _init_encryption(self):
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=KEY_DERIVATION_SALT,
            iterations=480000,
        )
        key = base64.urlsafe_b64encode(kdf.derive(self._machine_fingerprint()))
        self._fernet = Fernet(key)

    def _read_all(self) -> Dict[str, str]:
        if not self._path.exists():
            return {}
        try:
            decrypted = self._fernet.decrypt(self._path.read_bytes())
            return json.loads(decrypted.decode())
        except (InvalidToken, ValueError, OSError) as e:
            logger.error(f"Failed to read credentials file: {e}")
            return {}

    def _write_all(self, creds: Dict[str, str]) -> bool:
        try:
            self._directory.mkdir(mode=0o700, parents=True, exist_ok=True)
            encrypted = self._fernet.encrypt(json.dumps(creds).encode())
            temp_path = self._path.with_suffix(".tmp")
            temp_path.write_bytes(encrypted)
            os.chmod(temp_path, 0o600)
            temp_path.replace(self._path)
            return True
        except OSError as e:
            logger.error(f"Failed to write credentials file: {e}")
            return False

    def get(self, service: str) -> Optional[str]:
        return self._read_all().get(service)

    def set(self, service: str, api_key: str) -> bool:
        creds = self._read_all()
        creds[service] = api_key
        if self._write_all(creds):
            logger.info(f"Stored credential in encrypted file for: {service}")
            return True
        return False

    def delete(self, service: str) -> bool:
        creds = self._read_all()
        if service not in creds:
            return True
        del creds[service]
        return self._write_all(creds)

    def list_services(self) -> List[str]:
        return list(self._read_all().keys())


class EnvironmentBackend(CredentialBackend):
    """Environment variables, always available but not persistent"""

    ENV_VAR_MAP = {
        "groq": "GROQ_API_KEY",
        "mistral": "MISTRAL_API_KEY",
        "cerebras": "CEREBRAS_API_KEY",
        "deepseek": "DEEPSEEK_API_KEY",
        "tavily": "TAVILY_API_KEY",
        "replicate": "REPLICATE_API_KEY",
        "google_tts": "GOOGLE_TTS_API_KEY",
    }

    @property
    def is_available(self) -> bool:
        return True

    def env_var(self, service: str) -> str:
        return self.ENV_VAR_MAP.get(service.lower(), f"{service.upper()}_API_KEY")

    def get(self, service: str) -> Optional[str]:
        return os.environ.get(self.env_var(service))

    def set(self, service: str, api_key: str) -> bool:
        os.environ[self.env_var(service)] = api_key
        logger.warning(f"Set API key in environment (non-persistent) for: {service}")
        return True

    def delete(self, service: str) -> bool:
        os.environ.pop(self.env_var(service), None)
        return True

    def list_services(self) -> List[str]:
        return [s for s, var in self.ENV_VAR_MAP.items() if os.environ.get(var)]


class CredentialManager:
    """Looks up credentials through the backend chain, caching hits"""

    def __init__(self, backends: Optional[List[CredentialBackend]] = None):
        self._backends = backends if backends is not None else [
            KeyringBackend(),
            EncryptedFileBackend(),
            EnvironmentBackend(),
        ]
        self._cache: Dict[str, APICredential] = {}
        available = [type(b).__name__ for b in self._backends if b.is_available]
        logger.debug(f"Available credential backends: {available}")

    def get_credential(self, service: str) -> Optional[APICredential]:
        service = service.lower()
        if service in self._cache:
            return self._cache[service]

        for backend in self._backends:
            if not backend.is_available:
                continue
            api_key = backend.get(service)
            if api_key:
                credential = APICredential(service=service, _key=api_key)
                self._cache[service] = credential
                logger.debug(f"Credential for {service} found in {type(backend).__name__}")
                return credential

        logger.debug(f"No credential found for service: {service}")
        return None

    def set_credential(self, service: str, api_key: str) -> bool:
        """Store in the first persistent backend, else in the environment"""
        service = service.lower()
        if not api_key or len(api_key) < 10:
            logger.error("Invalid API key: too short")
            return False

        self._cache.pop(service, None)
        for backend in self._backends:
            if isinstance(backend, EnvironmentBackend) or not backend.is_available:
                continue
            if backend.set(service, api_key):
                return True

        for backend in self._backends:
            if isinstance(backend, EnvironmentBackend):
                return backend.set(service, api_key)
        return False

    def delete_credential(self, service: str) -> bool:
        service = service.lower()
        self._cache.pop(service, None)
        success = True
        for backend in self._backends:
            if backend.is_available:
                success = backend.delete(service) and success
        return success

    def list_configured_services(self) -> List[str]:
        services = set()
        for backend in self._backends:
            if backend.is_available:
                services.update(backend.list_services())
        return sorted(services)

    def get_api_key(self, service: str) -> Optional[str]:
        credential = self.get_credential(service)
        return credential.get_key() if credential else None

    def clear_cache(self):
        self._cache.clear()


_manager: Optional[CredentialManager] = None


def get_credential_manager() -> CredentialManager:
    global _manager
    if _manager is None:
        _manager = CredentialManager()
    return _manager


def get_api_key(service: str) -> Optional[str]:
    """Get the API key for a provider or tool service"""
    return get_credential_manager().get_api_key(service)


def set_api_key(service: str, api_key: str) -> bool:
    return get_credential_manager().set_credential(service, api_key)


def configure_credentials_interactive():
    """Prompt for each known service's API key"""
    print("\nTask Orchestrator credential configuration\n")
    print("=" * 50)

    manager = get_credential_manager()

    for service, label in KNOWN_SERVICES:
        status = "configured" if manager.get_credential(service) else "not set"
        print(f"\n{label}: [{status}]")

        answer = input(f"Configure {service}? (y/N/clear): ").strip().lower()
        if answer == "clear":
            manager.delete_credential(service)
            print(f"  -> Cleared {service}")
        elif answer == "y":
            api_key = getpass.getpass(f"  API key for {service}: ")
            if api_key and manager.set_credential(service, api_key):
                print(f"  -> Saved {service}")
            elif api_key:
                print(f"  -> Failed to save {service}")

    print("\n" + "=" * 50)
    print(f"Configured services: {manager.list_configured_services()}")
