"""
Public library interface for ColdCopy Local.

This module exposes helpers that embed ColdCopy in external Python runtimes
without going through the CLI wrapper.
"""

from __future__ import annotations

import logging
import os
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, MutableMapping, Optional, Tuple, Union

from .config.settings import DEFAULT_SETTINGS, ConfigManager, parse_follow_up_count
from .pipeline import JobWorker
from .stages import SingleCopyStage
from .utils.data_manager import LocalDataManager
from .utils.file_ingest import UploadValidationError, build_prospect_rows, read_csv_table, store_upload
from .utils.llm_client import normalize_llm_base_url
from .utils.logger import setup_logging as _setup_logging
from .utils.output_helpers import write_export_csv
from .utils.validators import InputValidator


DEFAULT_DATA_DIR = "./coldcopy_data"


class ConfigValidationError(ValueError):
    """Raised when configuration, settings or uploaded data fail validation."""


class ResourceNotFoundError(LookupError):
    """Raised when a file or job id does not exist."""


OptionsType = Union[Mapping[str, Any], object]


def generate_execution_id(prefix: str = "coldcopy") -> str:
    """
    Generate a unique run identifier.

    Args:
        prefix: Optional prefix for the identifier (default ``"coldcopy"``).

    Returns:
        Run ID string.
    """
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    unique_id = uuid.uuid4().hex[:8]
    return f"{prefix}_{timestamp}_{unique_id}"


def build_config(options: OptionsType = None, environ: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    """
    Build a runtime configuration dictionary from a mapping or namespace.

    Values resolve as defaults, then ``config/settings.json``, then
    environment variables, then explicit options that are not None.

    Args:
        options: Mapping, dataclass, or argparse namespace with overrides.
        environ: Environment mapping, defaults to ``os.environ``.

    Returns:
        Normalised configuration dictionary.
    """
    env = os.environ if environ is None else environ

    def _get(name: str, default: Any = None) -> Any:
        if options is None:
            return default
        if isinstance(options, Mapping):
            return options.get(name, default)
        return getattr(options, name, default)

    def _coerce_bool(value: Any, default: bool = False) -> bool:
        if value is None:
            return default
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            return value.strip().lower() in {"1", "true", "t", "yes", "y", "on"}
        return bool(value)

    data_dir = _get("data_dir") or env.get("COLDCOPY_DATA_DIR") or DEFAULT_DATA_DIR
    config: Dict[str, Any] = ConfigManager(data_dir).get_runtime_settings(dict(env))

    for key in DEFAULT_SETTINGS:
        value = _get(key)
        if value is not None:
            config[key] = value

    for key in ("log_activity_context", "log_bulk_prompt"):
        config[key] = _coerce_bool(config.get(key))

    config.update({
        "data_dir": data_dir,
        "run_id": _get("run_id") or generate_execution_id(),
        "log_level": str(config.get("log_level") or "INFO").upper(),
        "log_file": _get("log_file"),
        "verbose": _coerce_bool(_get("verbose")),
        "output_format": (_get("output_format") or "json").lower(),
    })
    config["llm_base_url"] = normalize_llm_base_url(config.get("llm_base_url"))

    return config


def prepare_data_directory(
    config: MutableMapping[str, Any],
    *,
    assign_default_log: bool = True,
    on_create: Optional[Callable[[Path], None]] = None,
) -> Path:
    """
    Ensure the data directory structure exists for the given configuration.

    Args:
        config: Configuration dictionary (mutated in-place when log_file is assigned).
        assign_default_log: When True, write a default log file path if none provided.
        on_create: Optional callback invoked with the created ``Path``.

    Returns:
        Path to the resolved data directory.
    """
    data_dir = Path(config.get("data_dir") or DEFAULT_DATA_DIR).expanduser()
    directories = [
        data_dir,
        data_dir / "config",
        data_dir / "uploads",
        data_dir / "logs",
        data_dir / "exports",
    ]

    for directory in directories:
        directory.mkdir(parents=True, exist_ok=True)

    if assign_default_log and not config.get("log_file"):
        log_filename = f"coldcopy_{config.get('run_id') or generate_execution_id()}.log"
        config["log_file"] = str((data_dir / "logs" / log_filename).resolve())

    if on_create:
        on_create(data_dir)

    return data_dir


def configure_logging(config: Mapping[str, Any]) -> logging.Logger:
    """
    Configure logging for a run.

    Args:
        config: Runtime configuration dictionary.

    Returns:
        Configured logger instance.
    """
    return _setup_logging(
        level=config.get("log_level", "INFO"),
        log_file=config.get("log_file"),
        verbose=bool(config.get("verbose", False)),
    )


def validate_config(config: Mapping[str, Any]) -> Tuple[bool, list]:
    """
    Validate runtime configuration for common issues.

    Args:
        config: Configuration dictionary to validate.

    Returns:
        Tuple of ``(is_valid, errors)``.
    """
    errors: list = []
    validator = InputValidator()
    errors.extend(validator.validate_runtime_config(dict(config)))

    data_dir_valid, data_errors = validate_data_directory(config.get("data_dir"))
    if not data_dir_valid:
        errors.extend(data_errors)

    return len(errors) == 0, errors


def validate_data_directory(data_dir: Optional[str]) -> Tuple[bool, list]:
    """
    Validate that the configured data directory is writable.

    Args:
        data_dir: Directory path supplied in configuration.

    Returns:
        Tuple of ``(is_valid, errors)``.
    """
    errors: list = []

    try:
        if not data_dir:
            raise ValueError("Data directory is not configured")

        path = Path(data_dir).expanduser()
        path.mkdir(parents=True, exist_ok=True)

        test_file = path / ".__coldcopy_write_test__"
        test_file.write_text("test")
        test_file.unlink()
    except (OSError, ValueError) as exc:
        errors.append(f"Failed to prepare data directory '{data_dir}': {exc}")

    return len(errors) == 0, errors


def _data_manager(config: Mapping[str, Any], data_manager: Optional[LocalDataManager]) -> LocalDataManager:
    return data_manager or LocalDataManager(config.get("data_dir") or DEFAULT_DATA_DIR)


def _require_job(data_manager: LocalDataManager, job_id: int) -> Dict[str, Any]:
    job = data_manager.get_job(job_id)
    if not job:
        raise ResourceNotFoundError(f"Job not found: {job_id}")
    return job


def create_worker(
    config: Mapping[str, Any],
    data_manager: Optional[LocalDataManager] = None,
    **kwargs: Any
) -> JobWorker:
    """Build and start a job worker sharing ``data_manager``."""
    worker = JobWorker(dict(config), data_manager=_data_manager(config, data_manager), **kwargs)
    worker.init()
    return worker


def upload_file(
    config: Mapping[str, Any],
    path: str,
    data_manager: Optional[LocalDataManager] = None
) -> Dict[str, Any]:
    """
    Store and validate a CSV/XLSX upload.

    Args:
        config: Runtime configuration.
        path: File to ingest.
        data_manager: Optional shared data manager.

    Returns:
        ``{'file': {...}, 'preview': [...]}``

    Raises:
        ConfigValidationError: When the file fails validation.
    """
    manager = _data_manager(config, data_manager)
    try:
        stored = store_upload(path, str(manager.uploads_dir))
    except UploadValidationError as e:
        raise ConfigValidationError(str(e)) from e

    file_id = manager.save_file(
        stored["original_filename"], stored["stored_path"], stored["headers"], stored["column_map"]
    )
    return {
        "file": {
            "id": file_id,
            "original_filename": Path(path).name,
            "headers": stored["headers"],
            "column_map": stored["column_map"],
            "total_rows": stored["total_rows"],
        },
        "preview": stored["preview"],
    }


def start_job(
    config: Mapping[str, Any],
    file_id: int,
    settings: Mapping[str, Any],
    data_manager: Optional[LocalDataManager] = None,
    worker: Optional[JobWorker] = None,
) -> Dict[str, Any]:
    """
    Create a job for an uploaded file, or reuse the latest non-failed one.

    Rows are enqueued on ``worker`` when given; otherwise the job stays
    queued until a worker starts.

    Returns:
        ``{'job': {...}, 'reused': bool}``

    Raises:
        ConfigValidationError: When settings are invalid.
        ResourceNotFoundError: When the file does not exist.
    """
    validator = InputValidator()
    errors = validator.validate_job_settings(dict(settings))
    if errors:
        raise ConfigValidationError("; ".join(errors))
    normalized = validator.normalize_job_settings(dict(settings))

    manager = worker.data_manager if worker is not None else _data_manager(config, data_manager)
    file_record = manager.get_file(file_id)
    if not file_record:
        raise ResourceNotFoundError(f"File not found: {file_id}")

    existing = manager.find_reusable_job(file_id)
    if existing:
        manager.logger.info(f"Reusing job {existing['id']} for file {file_id}")
        return {"job": existing, "reused": True}

    job_id = manager.create_job(file_id, normalized)
    _, rows = read_csv_table(file_record["stored_path"])
    manager.insert_job_rows(job_id, file_id, build_prospect_rows(rows, file_record["column_map"], validator))

    if worker is not None:
        worker.enqueue_job(job_id)
    return {"job": manager.get_job(job_id), "reused": False}


def pause_job(
    config: Mapping[str, Any],
    job_id: int,
    data_manager: Optional[LocalDataManager] = None
) -> Dict[str, Any]:
    manager = _data_manager(config, data_manager)
    _require_job(manager, job_id)
    manager.pause_job(job_id)
    return manager.get_job(job_id)


def resume_job(
    config: Mapping[str, Any],
    job_id: int,
    data_manager: Optional[LocalDataManager] = None,
    worker: Optional[JobWorker] = None,
) -> Dict[str, Any]:
    """
    Resume a job. Completed jobs are returned unchanged.

    Returns:
        The job record
    """
    manager = worker.data_manager if worker is not None else _data_manager(config, data_manager)
    job = _require_job(manager, job_id)
    if job.get("status") == "completed":
        return job

    manager.mark_job_running(job_id, only_if_active=False)
    if worker is not None:
        worker.enqueue_job(job_id)
    return manager.get_job(job_id)


def run_job(
    config: Mapping[str, Any],
    job_id: int,
    worker: Optional[JobWorker] = None,
    timeout: Optional[float] = None,
    **worker_kwargs: Any
) -> Dict[str, Any]:
    """
    Enqueue a job and block until its submitted rows settle.

    A worker created here is shut down before returning.
    """
    own_worker = worker is None
    worker = worker or create_worker(config, **worker_kwargs)
    try:
        _require_job(worker.data_manager, job_id)
        worker.enqueue_job(job_id)
        return worker.wait_for_job(job_id, timeout=timeout)
    finally:
        if own_worker:
            worker.shutdown()


def delete_job(
    config: Mapping[str, Any],
    job_id: int,
    data_manager: Optional[LocalDataManager] = None
) -> bool:
    manager = _data_manager(config, data_manager)
    _require_job(manager, job_id)
    return manager.delete_job(job_id)


def get_job_status(
    config: Mapping[str, Any],
    job_id: int,
    data_manager: Optional[LocalDataManager] = None
) -> Dict[str, Any]:
    return _require_job(_data_manager(config, data_manager), job_id)


def list_jobs(
    config: Mapping[str, Any],
    limit: int = 50,
    data_manager: Optional[LocalDataManager] = None
) -> List[Dict[str, Any]]:
    return _data_manager(config, data_manager).list_jobs(limit)


def get_job_rows(
    config: Mapping[str, Any],
    job_id: int,
    limit: int = 50,
    offset: int = 0,
    data_manager: Optional[LocalDataManager] = None
) -> Dict[str, Any]:
    """
    Page through generated rows.

    Returns:
        ``{'rows': [...], 'limit': int, 'offset': int}`` with the clamped paging values
    """
    manager = _data_manager(config, data_manager)
    _require_job(manager, job_id)
    limit = min(200, max(1, int(limit)))
    offset = max(0, int(offset))
    return {"rows": manager.get_job_rows(job_id, limit, offset), "limit": limit, "offset": offset}


def export_job_csv(
    config: Mapping[str, Any],
    job_id: int,
    output_path: Optional[str] = None,
    data_manager: Optional[LocalDataManager] = None
) -> Dict[str, Any]:
    """
    Write the export CSV for a job.

    Args:
        output_path: Destination, defaults to ``<data_dir>/exports/job_<id>_results.csv``

    Returns:
        ``{'path', 'rows', 'columns'}``
    """
    manager = _data_manager(config, data_manager)
    job = _require_job(manager, job_id)
    file_record = manager.get_file(job["file_id"])
    if not file_record:
        raise ResourceNotFoundError(f"File not found: {job['file_id']}")

    try:
        follow_up_count = parse_follow_up_count((job.get("settings") or {}).get("followUpCount"))
    except ValueError:
        follow_up_count = 0

    destination = output_path or str(manager.exports_dir / f"job_{job_id}_results.csv")
    result = write_export_csv(
        file_record["stored_path"], manager.get_job_outputs(job_id), follow_up_count, destination
    )
    manager.logger.info(f"Exported job {job_id} to {result['path']}")
    return result


def generate_single(
    config: Mapping[str, Any],
    request: Mapping[str, Any],
    data_manager: Optional[LocalDataManager] = None,
    **stage_kwargs: Any
) -> Dict[str, Any]:
    """
    Generate one email sequence for a manually entered prospect.

    Raises:
        ConfigValidationError: When request fields are invalid.
    """
    errors = InputValidator().validate_single_request(dict(request))
    if errors:
        raise ConfigValidationError("; ".join(errors))

    stage = SingleCopyStage(dict(config), data_manager=_data_manager(config, data_manager), **stage_kwargs)
    try:
        return stage.generate(dict(request))
    finally:
        stage.scraper.close()
