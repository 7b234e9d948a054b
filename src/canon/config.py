"""Canon configuration loader.

Priority (high → low):
  1. CLI flags           (handled at call site, not in this module)
  2. Environment variables  (CANON_EMBEDDING_MODEL, CANON_CLASSIFIER_MODEL)
  3. Per-project canon.yaml  (next to .canon.db)
  4. Global ~/.canon/config.yaml  (model defaults only, no API keys)
  5. Hardcoded defaults

Global config must never contain API keys; use environment variables instead.
All YAML reads use yaml.safe_load(), never yaml.load().
"""

from __future__ import annotations

import json
import os
import re
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from canon.ingest.chunker import DEFAULT_AVOID_PATTERNS
from canon.match.similarity import SimilarityThresholds

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_GLOBAL_CONFIG_DIR: Path = Path.home() / ".canon"
_GLOBAL_CONFIG_PATH: Path = _GLOBAL_CONFIG_DIR / "config.yaml"
_PROJECT_CONFIG_NAME: str = "canon.yaml"

# Fields that suggest an API key; forbidden in global config.
# Does NOT match legitimate config keys like max_tokens or batch_size.
_API_KEY_RE: re.Pattern[str] = re.compile(
    r"api[_\-]?(?:key|secret)"  # api_key, api-key, api_secret, apikey
    r"|_token$"                  # github_token, access_token (suffix)
    r"|^token$"                  # exactly "token" (standalone)
    r"|_secret$"                 # client_secret (suffix)
    r"|^secret$"                 # exactly "secret" (standalone)
    r"|passw(?:ord|d)"           # password, passwd
    r"|credential",              # credential, credentials
    re.IGNORECASE,
)

# Known top-level sections; unknown keys produce a warning
_KNOWN_SECTIONS: frozenset[str] = frozenset(
    [
        "brand",
        "embedding",
        "classification",
        "chunking",
        "similarity",
        "clustering",
        "ingest",
        "query",
    ]
)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ConfigError(ValueError):
    """Raised when a config file contains an invalid or forbidden value."""


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass
class BrandCfg:
    """Brand context passed to the classifier (canon.yaml: brand:)."""

    name: str = ""
    domain: str = ""


@dataclass
class EmbeddingCfg:
    """Embedding model configuration (canon.yaml: embedding:)."""

    model: str = "openai/text-embedding-3-small"
    dimensions: int = 1536
    batch_size: int = 2048


@dataclass
class ClassificationCfg:
    """Classifier configuration (canon.yaml: classification:)."""

    model: str = "openai/gpt-4o-mini"
    batch_size: int = 10
    max_workers: int = 10
    cache: bool = True


@dataclass
class ChunkingCfg:
    """Chunker bounds and boilerplate patterns (canon.yaml: chunking:)."""

    min_chunk_size: int = 50
    max_chunk_size: int = 500
    avoid_patterns: list[str] = field(default_factory=lambda: list(DEFAULT_AVOID_PATTERNS))


@dataclass
class SimilarityCfg:
    """Similarity tier thresholds (canon.yaml: similarity:)."""

    duplicate: float = 0.92
    near_duplicate: float = 0.85
    related: float = 0.75

    def thresholds(self) -> SimilarityThresholds:
        return SimilarityThresholds(
            duplicate=self.duplicate,
            near_duplicate=self.near_duplicate,
            related=self.related,
        )


@dataclass
class ClusteringCfg:
    """Cluster builder configuration (canon.yaml: clustering:)."""

    near_duplicate_threshold: float = 0.85
    min_cluster_size: int = 2
    flag_conflicts: bool = True


@dataclass
class IngestCfg:
    """Ingestion configuration (canon.yaml: ingest:)."""

    candidate_pool: int = 1000


@dataclass
class QueryCfg:
    """Grounding query defaults (canon.yaml: query:)."""

    limit: int = 5
    min_similarity: float = 0.75
    prefer_canonical: bool = True
    prefer_approved: bool = True
    candidate_pool: int = 100


@dataclass
class CanonConfig:
    """Root configuration object, built by load_config() from merged YAML layers."""

    brand: BrandCfg = field(default_factory=BrandCfg)
    embedding: EmbeddingCfg = field(default_factory=EmbeddingCfg)
    classification: ClassificationCfg = field(default_factory=ClassificationCfg)
    chunking: ChunkingCfg = field(default_factory=ChunkingCfg)
    similarity: SimilarityCfg = field(default_factory=SimilarityCfg)
    clustering: ClusteringCfg = field(default_factory=ClusteringCfg)
    ingest: IngestCfg = field(default_factory=IngestCfg)
    query: QueryCfg = field(default_factory=QueryCfg)


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _check_no_api_keys(data: dict[str, Any], source: Path) -> None:
    """Raise ConfigError if *data* contains any API-key-like key names."""

    def _scan(obj: Any, path: str) -> None:
        if isinstance(obj, dict):
            for k, v in obj.items():
                full = f"{path}.{k}" if path else k
                if _API_KEY_RE.search(str(k)):
                    raise ConfigError(
                        f"Global config '{source}' contains a forbidden key '{full}'.\n"
                        f"  API keys must be set via environment variables, not config files.\n"
                        f"  Remove '{full}' from {source.name} and use:\n"
                        f"    export {str(k).upper().replace('-', '_')}=<value>"
                    )
                _scan(v, full)

    _scan(data, "")


def _warn_unknown_keys(data: dict[str, Any], source: Path) -> None:
    """Emit a UserWarning for unrecognised top-level keys."""
    for key in data:
        if key not in _KNOWN_SECTIONS:
            warnings.warn(
                f"Unknown config key '{key}' in '{source}' (ignored).",
                UserWarning,
                stacklevel=4,
            )


def _validate(cfg: CanonConfig) -> None:
    """Raise ConfigError for values the pipeline cannot run with."""
    c = cfg.chunking
    if c.min_chunk_size < 0 or c.max_chunk_size < 1 or c.min_chunk_size > c.max_chunk_size:
        raise ConfigError(
            f"chunking: need 0 <= min_chunk_size <= max_chunk_size, "
            f"got {c.min_chunk_size} / {c.max_chunk_size}"
        )
    for pattern in c.avoid_patterns:
        try:
            re.compile(pattern)
        except re.error as exc:
            raise ConfigError(f"chunking.avoid_patterns: invalid regex {pattern!r}: {exc}") from exc
    try:
        cfg.similarity.thresholds()
    except ValueError as exc:
        raise ConfigError(f"similarity: {exc}") from exc
    if not 1 <= cfg.embedding.batch_size <= 2048:
        raise ConfigError(f"embedding.batch_size must be in [1, 2048], got {cfg.embedding.batch_size}")
    if cfg.embedding.dimensions < 1:
        raise ConfigError(f"embedding.dimensions must be >= 1, got {cfg.embedding.dimensions}")
    if cfg.classification.batch_size < 1 or cfg.classification.max_workers < 1:
        raise ConfigError("classification.batch_size and max_workers must be >= 1")
    if cfg.clustering.min_cluster_size < 1:
        raise ConfigError("clustering.min_cluster_size must be >= 1")
    for name, pool in (("ingest", cfg.ingest.candidate_pool), ("query", cfg.query.candidate_pool)):
        if pool < 1:
            raise ConfigError(f"{name}.candidate_pool must be >= 1, got {pool}")
    if not 1 <= cfg.query.limit <= 20:
        raise ConfigError(f"query.limit must be in [1, 20], got {cfg.query.limit}")
    if not 0.0 <= cfg.query.min_similarity <= 1.0:
        raise ConfigError(f"query.min_similarity must be in [0, 1], got {cfg.query.min_similarity}")


# ---------------------------------------------------------------------------
# Merge + build
# ---------------------------------------------------------------------------


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return a new dict that is *base* deep-merged with *override*."""
    result = dict(base)
    for k, v in override.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge(result[k], v)
        else:
            result[k] = v
    return result


def _cfg_from_dict(data: dict[str, Any]) -> CanonConfig:
    """Build a *CanonConfig* from a merged raw YAML dict."""
    cfg = CanonConfig()

    if "brand" in data:
        b = data["brand"] or {}
        cfg.brand = BrandCfg(
            name=str(b.get("name", cfg.brand.name)),
            domain=str(b.get("domain", cfg.brand.domain)),
        )

    if "embedding" in data:
        e = data["embedding"] or {}
        cfg.embedding = EmbeddingCfg(
            model=str(e.get("model", cfg.embedding.model)),
            dimensions=int(e.get("dimensions", cfg.embedding.dimensions)),
            batch_size=int(e.get("batch_size", cfg.embedding.batch_size)),
        )

    if "classification" in data:
        c = data["classification"] or {}
        cfg.classification = ClassificationCfg(
            model=str(c.get("model", cfg.classification.model)),
            batch_size=int(c.get("batch_size", cfg.classification.batch_size)),
            max_workers=int(c.get("max_workers", cfg.classification.max_workers)),
            cache=bool(c.get("cache", cfg.classification.cache)),
        )

    if "chunking" in data:
        ch = data["chunking"] or {}
        cfg.chunking = ChunkingCfg(
            min_chunk_size=int(ch.get("min_chunk_size", cfg.chunking.min_chunk_size)),
            max_chunk_size=int(ch.get("max_chunk_size", cfg.chunking.max_chunk_size)),
            avoid_patterns=[
                str(p) for p in ch.get("avoid_patterns", cfg.chunking.avoid_patterns)
            ],
        )

    if "similarity" in data:
        s = data["similarity"] or {}
        cfg.similarity = SimilarityCfg(
            duplicate=float(s.get("duplicate", cfg.similarity.duplicate)),
            near_duplicate=float(s.get("near_duplicate", cfg.similarity.near_duplicate)),
            related=float(s.get("related", cfg.similarity.related)),
        )

    if "clustering" in data:
        cl = data["clustering"] or {}
        cfg.clustering = ClusteringCfg(
            near_duplicate_threshold=float(
                cl.get("near_duplicate_threshold", cfg.clustering.near_duplicate_threshold)
            ),
            min_cluster_size=int(cl.get("min_cluster_size", cfg.clustering.min_cluster_size)),
            flag_conflicts=bool(cl.get("flag_conflicts", cfg.clustering.flag_conflicts)),
        )

    if "ingest" in data:
        i = data["ingest"] or {}
        cfg.ingest = IngestCfg(
            candidate_pool=int(i.get("candidate_pool", cfg.ingest.candidate_pool)),
        )

    if "query" in data:
        q = data["query"] or {}
        cfg.query = QueryCfg(
            limit=int(q.get("limit", cfg.query.limit)),
            min_similarity=float(q.get("min_similarity", cfg.query.min_similarity)),
            prefer_canonical=bool(q.get("prefer_canonical", cfg.query.prefer_canonical)),
            prefer_approved=bool(q.get("prefer_approved", cfg.query.prefer_approved)),
            candidate_pool=int(q.get("candidate_pool", cfg.query.candidate_pool)),
        )

    return cfg


def _apply_env_overrides(cfg: CanonConfig) -> CanonConfig:
    """Apply CANON_* environment variable overrides (layer 2)."""
    if model := os.environ.get("CANON_EMBEDDING_MODEL"):
        cfg.embedding.model = model
    if model := os.environ.get("CANON_CLASSIFIER_MODEL"):
        cfg.classification.model = model
    return cfg


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    project_dir: Path | None = None,
    *,
    global_config_path: Path | None = None,
) -> CanonConfig:
    """Load and return a merged *CanonConfig*.

    Applies layers in order: global → per-project → env vars.
    CLI flag overrides must be applied by the caller after this function.

    Args:
        project_dir: Directory to search for *canon.yaml*. Defaults to CWD.
        global_config_path: Override the global config path (for testing).

    Raises:
        ConfigError: If global config contains API-key-like fields, or a value
            is out of range (thresholds out of order, bad regex, ...).
    """
    global_path = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    search_dir = project_dir if project_dir is not None else Path.cwd()

    merged: dict[str, Any] = {}

    # Layer 1: global config
    if global_path.exists():
        raw_global = yaml.safe_load(global_path.read_text(encoding="utf-8")) or {}
        _check_no_api_keys(raw_global, global_path)
        _warn_unknown_keys(raw_global, global_path)
        merged = _deep_merge(merged, raw_global)

    # Layer 2: per-project config
    project_cfg_path = search_dir / _PROJECT_CONFIG_NAME
    if project_cfg_path.exists():
        raw_project = yaml.safe_load(project_cfg_path.read_text(encoding="utf-8")) or {}
        _warn_unknown_keys(raw_project, project_cfg_path)
        merged = _deep_merge(merged, raw_project)

    try:
        cfg = _cfg_from_dict(merged)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid config value: {exc}") from exc

    # Layer 3: env var overrides
    cfg = _apply_env_overrides(cfg)

    _validate(cfg)
    return cfg


def write_project_config(project_dir: Path, brand_name: str = "") -> Path:
    """Write a starter ``canon.yaml`` into *project_dir* unless one exists.

    Returns:
        Path to the project config file.
    """
    target = project_dir / _PROJECT_CONFIG_NAME
    if target.exists():
        return target
    content = (
        "# Canon project configuration.\n"
        "# NEVER store API keys here; use environment variables:\n"
        "#   export OPENAI_API_KEY=sk-...\n"
        "\n"
        "brand:\n"
        f"  name: {json.dumps(brand_name)}\n"
        "\n"
        "embedding:\n"
        "  model: openai/text-embedding-3-small\n"
        "  dimensions: 1536\n"
        "\n"
        "classification:\n"
        "  model: openai/gpt-4o-mini\n"
        "\n"
        "chunking:\n"
        "  min_chunk_size: 50\n"
        "  max_chunk_size: 500\n"
        "\n"
        "similarity:\n"
        "  duplicate: 0.92\n"
        "  near_duplicate: 0.85\n"
        "  related: 0.75\n"
    )
    target.write_text(content, encoding="utf-8")
    return target
