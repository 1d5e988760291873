#!/usr/bin/env python3
"""
ColdCopy Local - Command Line Interface
Cold-email copy generation for uploaded prospect lists
"""

import argparse
import sys
from typing import Dict, Any, Optional

from .api import (
    build_config as build_runtime_config,
    configure_logging as configure_runtime_logging,
    create_worker,
    delete_job,
    export_job_csv,
    generate_single,
    get_job_rows,
    get_job_status,
    list_jobs,
    pause_job,
    prepare_data_directory,
    resume_job,
    start_job,
    upload_file,
    validate_config as validate_runtime_config,
)
from .utils.output_helpers import render_json, render_text


# argparse dest -> camelCase key used by job settings and single requests
SETTING_ARGUMENTS = {
    'value_prop': 'valueProp',
    'call_to_action': 'callToAction',
    'subject': 'subject',
    'follow_up_count': 'followUpCount',
    'follow_up_prompts': 'followUpPrompts',
    'tone': 'tone',
    'length': 'length',
    'custom_length': 'customLength',
    'instructions': 'instructions',
}

SINGLE_ARGUMENTS = {
    'recipient_name': 'recipientName',
    'recipient_role': 'recipientRole',
    'company_name': 'companyName',
    'company_url': 'companyUrl',
    'activity_text': 'activityText',
    'sender_name': 'senderName',
    'sender_title': 'senderTitle',
    'sender_company': 'senderCompany',
}


class ColdCopyCLI:
    """
    Command-line interface for ColdCopy Local.
    """

    def __init__(self):
        """Initialize CLI with argument parser."""
        self.parser = self._setup_argument_parser()
        self.logger = None

    def _setup_argument_parser(self) -> argparse.ArgumentParser:
        """
        Set up command-line argument parser.

        Returns:
            Configured ArgumentParser instance
        """
        parser = argparse.ArgumentParser(
            description='ColdCopy Local - personalized cold-email sequences for prospect lists',
            formatter_class=argparse.RawDescriptionHelpFormatter,
            epilog="""
Examples:
  # Upload a prospect list
  coldcopy upload prospects.xlsx

  # Start a job for the uploaded file and wait for every row
  coldcopy start 1 --value-prop "Faster onboarding" --call-to-action "Open to a quick call?" \\
      --tone Friendly --length Short --follow-up-count 2 --wait

  # Check progress and page through generated rows
  coldcopy status 1
  coldcopy rows 1 --limit 20 --offset 40

  # Export results next to the original columns
  coldcopy export 1 --output results.csv

  # Generate one sequence without uploading a file
  coldcopy single --recipient-name Dana --company-name Acme --company-url acme.com \\
      --call-to-action "Worth a chat?" --tone Direct --sender-name Sam \\
      --sender-title "Account Executive" --sender-company Initech --output-format text
            """
        )

        parser.add_argument('--data-dir', help='Data directory (default: ./coldcopy_data)')
        parser.add_argument('--log-level', choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
                            help='Logging level (default: INFO)')
        parser.add_argument('--log-file', help='Log file path (default: <data-dir>/logs/coldcopy_<run>.log)')
        parser.add_argument('--verbose', action='store_true', help='Enable verbose console logging')
        parser.add_argument('--output-format', choices=['json', 'text'], default='json',
                            help='Output format (default: json)')
        parser.add_argument('--llm-api-key', help='API key for the OpenAI-compatible endpoint')
        parser.add_argument('--llm-base-url', help='Base URL of the OpenAI-compatible endpoint')
        parser.add_argument('--llm-model', help='Model name')
        parser.add_argument('--worker-concurrency', type=int, help='Rows processed in parallel')

        subparsers = parser.add_subparsers(dest='command', help='Available commands')

        upload_parser = subparsers.add_parser('upload', help='Upload a CSV or XLSX prospect list')
        upload_parser.add_argument('path', help='Path to the .csv or .xlsx file')

        start_parser = subparsers.add_parser('start', help='Start a generation job for an uploaded file')
        start_parser.add_argument('file_id', type=int, help='Uploaded file id')
        self._add_setting_arguments(start_parser)
        start_parser.add_argument('--wait', action='store_true',
                                  help='Process rows now and wait until they finish')

        status_parser = subparsers.add_parser('status', help='Show job progress')
        status_parser.add_argument('job_id', type=int, help='Job id')

        jobs_parser = subparsers.add_parser('jobs', help='List recent jobs')
        jobs_parser.add_argument('--limit', type=int, default=50, help='Maximum jobs to list')

        rows_parser = subparsers.add_parser('rows', help='Page through generated rows')
        rows_parser.add_argument('job_id', type=int, help='Job id')
        rows_parser.add_argument('--limit', type=int, default=50, help='Rows per page (1-200)')
        rows_parser.add_argument('--offset', type=int, default=0, help='Rows to skip')

        pause_parser = subparsers.add_parser('pause', help='Pause a job')
        pause_parser.add_argument('job_id', type=int, help='Job id')

        resume_parser = subparsers.add_parser('resume', help='Resume a paused or interrupted job')
        resume_parser.add_argument('job_id', type=int, help='Job id')
        resume_parser.add_argument('--wait', action='store_true',
                                   help='Process remaining rows now and wait until they finish')

        delete_parser = subparsers.add_parser('delete', help='Delete a job, its rows and its upload')
        delete_parser.add_argument('job_id', type=int, help='Job id')

        export_parser = subparsers.add_parser('export', help='Export job results as CSV')
        export_parser.add_argument('job_id', type=int, help='Job id')
        export_parser.add_argument('--output', help='Destination CSV path')

        single_parser = subparsers.add_parser('single', help='Generate one sequence for a single prospect')
        single_parser.add_argument('--recipient-name', required=True, help='Recipient first name')
        single_parser.add_argument('--recipient-role', help='Recipient job title')
        single_parser.add_argument('--company-name', required=True, help='Recipient company')
        single_parser.add_argument('--company-url',
                                   help='Company or activity URL, or pasted context text')
        single_parser.add_argument('--activity-text', help='Pasted activity context')
        single_parser.add_argument('--sender-name', required=True, help='Sender name')
        single_parser.add_argument('--sender-title', required=True, help='Sender title')
        single_parser.add_argument('--sender-company', required=True, help='Sender company')
        self._add_setting_arguments(single_parser)

        return parser

    def _add_setting_arguments(self, parser: argparse.ArgumentParser) -> None:
        """Add the copy settings shared by ``start`` and ``single``."""
        parser.add_argument('--value-prop', help='Offer summary')
        parser.add_argument('--call-to-action', help='Call to action')
        parser.add_argument('--subject', help='Fallback subject line')
        parser.add_argument('--follow-up-count', default='0', help='Number of follow-up emails')
        parser.add_argument('--follow-up-prompts', help='Guidance for follow-up emails')
        parser.add_argument('--tone', help='Tone, e.g. Friendly, Direct, Consultative')
        parser.add_argument('--length', default='Medium',
                            help='Copy length: Short, Medium, Long or Custom')
        parser.add_argument('--custom-length', help='Word count when --length is Custom')
        parser.add_argument('--instructions', help='Additional instructions')

    def parse_args(self, args: Optional[list] = None) -> argparse.Namespace:
        """
        Parse command-line arguments.

        Args:
            args: Optional list of arguments (uses sys.argv if None)

        Returns:
            Parsed arguments namespace
        """
        return self.parser.parse_args(args)

    def create_config(self, args: argparse.Namespace) -> Dict[str, Any]:
        """
        Create configuration dictionary from parsed arguments.

        Args:
            args: Parsed arguments

        Returns:
            Configuration dictionary
        """
        return build_runtime_config(args)

    def setup_logging(self, config: Dict[str, Any]) -> None:
        """
        Set up logging based on configuration.

        Args:
            config: Configuration dictionary
        """
        self.logger = configure_runtime_logging(config)

    def format_output(self, results: Any, format_type: str) -> str:
        """
        Format command results for output.

        Args:
            results: Command results
            format_type: Output format (json, text)

        Returns:
            Formatted output string
        """
        if format_type == 'text':
            if isinstance(results, dict) and 'text' in results and 'emails' in results:
                return results['text']
            return render_text(results)
        return render_json(results)

    def run(self, args: Optional[list] = None) -> int:
        """
        Main execution method.

        Args:
            args: Optional command-line arguments

        Returns:
            Exit code (0 for success, 1 for error)
        """
        try:
            parsed_args = self.parse_args(args)

            command = getattr(parsed_args, 'command', None)
            if command is None:
                self.parser.print_help(sys.stderr)
                return 1

            config = self.create_config(parsed_args)
            prepare_data_directory(config)
            self.setup_logging(config)

            is_valid, errors = validate_runtime_config(config)
            if not is_valid:
                for error in errors:
                    print(f"Error: {error}", file=sys.stderr)
                return 1

            handler = getattr(self, f"_run_{command}", None)
            if handler is None:
                print(f"Unknown command: {command}", file=sys.stderr)
                return 1

            results = handler(parsed_args, config)
            print(self.format_output(results, config.get('output_format', 'json')))
            return 0

        except KeyboardInterrupt:
            print("\nExecution interrupted by user", file=sys.stderr)
            return 1
        except Exception as e:
            if self.logger:
                self.logger.debug("Command failed", exc_info=True)
            print(f"Error: {str(e)}", file=sys.stderr)
            return 1

    def _collect(self, args: argparse.Namespace, mapping: Dict[str, str]) -> Dict[str, Any]:
        values = {}
        for dest, key in mapping.items():
            value = getattr(args, dest, None)
            if value is not None:
                values[key] = value
        return values

    def _run_upload(self, args: argparse.Namespace, config: Dict[str, Any]) -> Dict[str, Any]:
        return upload_file(config, args.path)

    def _run_start(self, args: argparse.Namespace, config: Dict[str, Any]) -> Dict[str, Any]:
        settings = self._collect(args, SETTING_ARGUMENTS)
        if not args.wait:
            return start_job(config, args.file_id, settings)

        worker = create_worker(config)
        try:
            result = start_job(config, args.file_id, settings, worker=worker)
            job_id = result['job']['id']
            if result['reused']:
                worker.enqueue_job(job_id)
            result['job'] = worker.wait_for_job(job_id)
            return result
        finally:
            worker.shutdown()

    def _run_status(self, args: argparse.Namespace, config: Dict[str, Any]) -> Dict[str, Any]:
        return get_job_status(config, args.job_id)

    def _run_jobs(self, args: argparse.Namespace, config: Dict[str, Any]) -> Dict[str, Any]:
        return {'jobs': list_jobs(config, limit=args.limit)}

    def _run_rows(self, args: argparse.Namespace, config: Dict[str, Any]) -> Dict[str, Any]:
        return get_job_rows(config, args.job_id, limit=args.limit, offset=args.offset)

    def _run_pause(self, args: argparse.Namespace, config: Dict[str, Any]) -> Dict[str, Any]:
        return pause_job(config, args.job_id)

    def _run_resume(self, args: argparse.Namespace, config: Dict[str, Any]) -> Dict[str, Any]:
        if not args.wait:
            return resume_job(config, args.job_id)

        worker = create_worker(config)
        try:
            job = resume_job(config, args.job_id, worker=worker)
            return worker.wait_for_job(job['id'])
        finally:
            worker.shutdown()

    def _run_delete(self, args: argparse.Namespace, config: Dict[str, Any]) -> Dict[str, Any]:
        return {'job_id': args.job_id, 'deleted': delete_job(config, args.job_id)}

    def _run_export(self, args: argparse.Namespace, config: Dict[str, Any]) -> Dict[str, Any]:
        return export_job_csv(config, args.job_id, output_path=args.output)

    def _run_single(self, args: argparse.Namespace, config: Dict[str, Any]) -> Dict[str, Any]:
        request = self._collect(args, SINGLE_ARGUMENTS)
        request.update(self._collect(args, SETTING_ARGUMENTS))
        return generate_single(config, request)


def main():
    """Main entry point for command-line execution."""
    cli = ColdCopyCLI()
    exit_code = cli.run()
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
