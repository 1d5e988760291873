"""
ColdCopy Local - personalized cold-email copy generation for prospect lists.

This package exposes a programmatic API so uploads, jobs and single-copy
generation can be embedded in other tools without launching the CLI.
"""

from .api import (
    ConfigValidationError,
    ResourceNotFoundError,
    build_config,
    configure_logging,
    create_worker,
    delete_job,
    export_job_csv,
    generate_execution_id,
    generate_single,
    get_job_rows,
    get_job_status,
    list_jobs,
    pause_job,
    prepare_data_directory,
    resume_job,
    run_job,
    start_job,
    upload_file,
    validate_config,
)
from .cli import ColdCopyCLI, main as cli_main
from .pipeline import JobWorker

__all__ = [
    "ColdCopyCLI",
    "ConfigValidationError",
    "JobWorker",
    "ResourceNotFoundError",
    "build_config",
    "cli_main",
    "configure_logging",
    "create_worker",
    "delete_job",
    "export_job_csv",
    "generate_execution_id",
    "generate_single",
    "get_job_rows",
    "get_job_status",
    "list_jobs",
    "pause_job",
    "prepare_data_directory",
    "resume_job",
    "run_job",
    "start_job",
    "upload_file",
    "validate_config",
]

__version__ = "0.1.0"
__description__ = "Personalized cold-email copy generation that runs entirely on your local machine."
