"""Runtime settings for the register import service.

Values come from the process environment, optionally layered over a dotenv
style profile file (``.env.<REGISTER_IMPORT_ENV>``, ``local`` by default, or the
file named by ``REGISTER_IMPORT_ENV_FILE``). The shell always wins over the file.
"""
from __future__ import annotations

from dataclasses import dataclass, field
import os
from pathlib import Path
from typing import Iterator, Mapping

from sqlalchemy.engine import URL

PREFIX = "REGISTER_IMPORT_"
DEFAULT_MAX_UPLOAD_BYTES = 10 * 1024 * 1024


def _candidate_dirs() -> Iterator[Path]:
    here = Path(__file__).resolve()
    seen: set[Path] = set()
    for directory in (Path.cwd().resolve(), here.parent, *here.parents):
        if directory not in seen:
            seen.add(directory)
            yield directory


def _find_env_file(name: str) -> Path | None:
    """Locate ``name`` as given, then relative to the working directory and this package."""

    direct = Path(name)
    if direct.is_absolute():
        return direct if direct.is_file() else None
    for directory in _candidate_dirs():
        path = directory / name
        if path.is_file():
            return path
    return None


def _read_env_file(path: Path) -> dict[str, str]:
    values: dict[str, str] = {}
    for line in path.read_text().splitlines():
        line = line.strip()
        if line.startswith("export "):
            line = line[7:].lstrip()
        key, sep, value = line.partition("=")
        if not sep or line.startswith("#"):
            continue
        values[key.strip()] = value.strip().strip("'\"")
    return values


def _profile_env(env: Mapping[str, str]) -> dict[str, str]:
    name = env.get(PREFIX + "ENV_FILE") or f".env.{env.get(PREFIX + 'ENV', 'local')}"
    path = _find_env_file(name)
    return _read_env_file(path) if path is not None else {}


def _database_url_from_parts(env: Mapping[str, str]) -> str | None:
    """Assemble a URL from ``REGISTER_IMPORT_DB_*``; ``None`` when no host is configured."""

    host = env.get(PREFIX + "DB_HOST")
    if not host:
        return None
    # An empty password is allowed, a missing one is not.
    if not env.get(PREFIX + "DB_USERNAME"):
        raise RuntimeError(f"{PREFIX}DB_USERNAME must be set when using discrete database settings")
    if PREFIX + "DB_PASSWORD" not in env:
        raise RuntimeError(f"{PREFIX}DB_PASSWORD must be set when using discrete database settings")

    port = env.get(PREFIX + "DB_PORT", "5432")
    url = URL.create(
        env.get(PREFIX + "DB_DRIVER", "postgresql+psycopg"),
        username=env[PREFIX + "DB_USERNAME"],
        password=env[PREFIX + "DB_PASSWORD"],
        host=host,
        port=int(port) if port else None,
        database=env.get(PREFIX + "DB_NAME", "registers"),
    )
    return url.render_as_string(hide_password=False)


def _split_suffixes(raw: str | None) -> tuple[str, ...]:
    return tuple(part.strip() for part in (raw or "").split(",") if part.strip())


@dataclass(frozen=True)
class Settings:
    """Runtime configuration."""

    database_url: str
    # Legal-form suffixes added to the built-in corporate suffix dictionary.
    extra_corporate_suffixes: tuple[str, ...] = field(default_factory=tuple)
    max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES

    @staticmethod
    def load(env: Mapping[str, str] | None = None) -> "Settings":
        """Load settings from ``env`` (the process environment by default)."""

        shell = dict(os.environ if env is None else env)
        merged = {**_profile_env(shell), **shell}

        database_url = merged.get(PREFIX + "DATABASE_URL") or _database_url_from_parts(merged)
        if not database_url:
            raise RuntimeError(
                f"{PREFIX}DATABASE_URL must be set or provide discrete database settings via the env file"
            )

        raw_limit = merged.get(PREFIX + "MAX_UPLOAD_BYTES")
        try:
            max_upload_bytes = int(raw_limit) if raw_limit else DEFAULT_MAX_UPLOAD_BYTES
        except ValueError as exc:
            raise RuntimeError(f"{PREFIX}MAX_UPLOAD_BYTES must be an integer number of bytes") from exc

        return Settings(
            database_url=database_url,
            extra_corporate_suffixes=_split_suffixes(merged.get(PREFIX + "EXTRA_CORPORATE_SUFFIXES")),
            max_upload_bytes=max_upload_bytes,
        )


__all__ = ["Settings", "DEFAULT_MAX_UPLOAD_BYTES"]
