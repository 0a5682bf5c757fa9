from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Dict, Optional, Type, TypeVar
from uuid import uuid4

from pydantic import BaseModel, ValidationError

from .models import CredentialState, EthereumAccount, StellarKeypair


# Environment variable name for convenience configuration
ENV_STATE_PATH = "CREDENTIAL_STATE_PATH"
DEFAULT_STATE_FILE = "state.json"


class StateStoreError(RuntimeError):
    """Base error for the credential state store."""


class MalformedStateError(StateStoreError, ValueError):
    """The state file exists but is not a valid credential document."""


class StateWriteError(StateStoreError):
    """Writing or updating the state file failed."""


def _dump_document(doc: Dict[str, Any]) -> str:
    # Two-space indent, key order as stored
    return json.dumps(doc, indent=2, ensure_ascii=False)


_M = TypeVar("_M", bound=BaseModel)


def _validate_section(model: Type[_M], raw: Any) -> _M:
    if not isinstance(raw, dict):
        return model()
    try:
        return model.model_validate(raw)
    except ValidationError:
        return model()


class FileStateStore:
    """
    Local JSON-file persistence for `CredentialState`.

    Usage
    - `read()` is strict: a missing file yields `CredentialState.empty()` (the
      file is not created), anything unparseable raises `MalformedStateError`.
    - `write(state)` overwrites the whole document.
    - `update_stellar_keypair()` / `update_ethereum_account()` merge one
      section into whatever is on disk. A missing, empty or corrupt file is
      treated as `{}` here, so the other chain's section and any unknown keys
      survive an update while garbage is discarded.
    - `read_stellar_keypair()` / `read_ethereum_account()` are just as lenient and
      validate only their own section.

    Writes land in a sibling owner-only (0600) temp file first and are moved
    into place with `os.replace`. There is no locking: concurrent writers are last-writer-wins.

    Environment variables (optional)
    - `CREDENTIAL_STATE_PATH`: file path, default `state.json` in the working directory
    """

    def __init__(self, path: os.PathLike[str] | str) -> None:
        self._path = Path(path)

    # -------- Construction helpers --------
    @classmethod
    def from_env(cls) -> "FileStateStore":
        raw = os.environ.get(ENV_STATE_PATH) or DEFAULT_STATE_FILE
        return cls(Path.cwd() / raw)

    @property
    def path(self) -> Path:
        return self._path

    # -------- Core operations --------
    def read(self) -> CredentialState:
        """Read and validate the credential document.

        Raises:
        - MalformedStateError if the file is not JSON or does not match the schema.
        - OSError for other filesystem issues.
        """
        try:
            text = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return CredentialState.empty()
        except UnicodeDecodeError as ex:
            raise MalformedStateError(f"State file {self._path} is not UTF-8") from ex

        try:
            raw = json.loads(text)
        except json.JSONDecodeError as ex:
            raise MalformedStateError(f"Failed to parse state JSON at {self._path}") from ex

        try:
            return CredentialState.model_validate(raw)
        except ValidationError as ex:
            raise MalformedStateError(f"State at {self._path} does not match the credential schema") from ex

    def write(self, state: CredentialState) -> None:
        """Serialize and overwrite the whole document."""
        try:
            self._write_document(state.model_dump(by_alias=True))
        except (OSError, TypeError, ValueError) as ex:
            raise StateWriteError(f"Failed to write state: {ex}") from ex

    def read_stellar_keypair(self) -> StellarKeypair:
        """Stored keypair, or an empty one when the section is missing or unusable.

        Only the stellar section is validated, so a broken ethereum section
        does not hide a good keypair.
        """
        section = self._read_raw().get("stellar")
        keypair = section.get("keypair") if isinstance(section, dict) else None
        return _validate_section(StellarKeypair, keypair)

    def read_ethereum_account(self) -> EthereumAccount:
        """Stored account, or an empty one when the section is missing or unusable."""
        return _validate_section(EthereumAccount, self._read_raw().get("ethereum"))

    def update_stellar_keypair(self, keypair: StellarKeypair) -> None:
        try:
            doc = self._read_raw()
            stellar = doc.get("stellar")
            if not isinstance(stellar, dict):
                stellar = {}
            stellar["keypair"] = keypair.model_dump(by_alias=True)
            doc["stellar"] = stellar
            self._write_document(doc)
        except (OSError, TypeError, ValueError) as ex:
            raise StateWriteError(f"Failed to update stellar keypair: {ex}") from ex

    def update_ethereum_account(self, account: EthereumAccount) -> None:
        try:
            doc = self._read_raw()
            ethereum = doc.get("ethereum")
            if not isinstance(ethereum, dict):
                ethereum = {}
            # Only the two known keys are touched; anything else in the section stays
            dumped = account.model_dump(by_alias=True)
            ethereum["privateKey"] = dumped["privateKey"]
            ethereum["address"] = dumped["address"]
            doc["ethereum"] = ethereum
            self._write_document(doc)
        except (OSError, TypeError, ValueError) as ex:
            raise StateWriteError(f"Failed to update ethereum account: {ex}") from ex

    # -------- Internal --------
    def _read_raw(self) -> Dict[str, Any]:
        """Lenient load used by the merge path: missing or corrupt content reads as {}."""
        try:
            text = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except UnicodeDecodeError:
            return {}

        text = text.strip()
        if not text:
            return {}
        try:
            raw = json.loads(text)
        except json.JSONDecodeError:
            return {}
        return raw if isinstance(raw, dict) else {}

    def _write_document(self, doc: Dict[str, Any]) -> None:
        payload = _dump_document(doc)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path: Optional[Path] = self._path.with_name(f"{self._path.name}.tmp-{uuid4().hex}")
        try:
            # Owner-only: the document holds private keys
            fd = os.open(tmp_path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
            os.replace(tmp_path, self._path)
            tmp_path = None
        finally:
            if tmp_path is not None:
                tmp_path.unlink(missing_ok=True)
