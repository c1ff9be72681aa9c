"""
Interactive Session Module

Menu-driven mode offering the same operations as the subcommands.
"""
from typing import Callable, Optional

from prompt_toolkit import prompt
from prompt_toolkit.completion import WordCompleter
from prompt_toolkit.history import InMemoryHistory

from .bulk import BulkOperation
from .client import SalesforceClient
from .commands import (
    apex_command, bulk_command, load_json_payload, query_command,
    read_text_file, rest_command, track_command,
)
from .config import Config
from .display import console, display_error, display_menu
from .errors import SfuError
from .rest import BODY_METHODS, METHODS


class InteractiveSession:
    """Interactive Salesforce utility session."""

    MENU = [
        'Run SOQL query',
        'Call REST API',
        'Track changes',
        'Run Bulk API job',
        'Execute anonymous Apex',
        'Exit',
    ]

    def __init__(self, client: SalesforceClient, config: Config):
        """Initialize interactive session."""
        self.client = client
        self.config = config
        self.history = InMemoryHistory()
        self.last_sobject: Optional[str] = None

    def _ask(self, text: str, choices=None, default: str = '') -> str:
        completer = WordCompleter(list(choices), ignore_case=True) if choices else None
        return prompt(text, history=self.history, completer=completer, default=default).strip()

    def _ask_required(self, text: str, choices=None, default: str = '') -> str:
        value = self._ask(text, choices, default)
        if not value:
            raise SfuError(f"{text.rstrip(': ')} is required.")
        return value

    def run(self):
        """Run the interactive session."""
        actions = {
            '1': self._query,
            '2': self._rest,
            '3': self._track,
            '4': self._bulk,
            '5': self._apex,
        }

        while True:
            display_menu("Salesforce Utility", self.MENU)
            try:
                choice = self._ask("sfu> ", choices=[str(i) for i in range(1, len(self.MENU) + 1)])
                if choice in ('6', 'exit', 'quit', 'q'):
                    break
                action: Optional[Callable[[], int]] = actions.get(choice)
                if action is None:
                    display_error(f"Unknown option: {choice}")
                    continue
                action()
            except KeyboardInterrupt:
                continue
            except EOFError:
                break
            except (SfuError, ValueError, LookupError) as e:
                display_error(str(e))

        console.print("\n[dim]Goodbye![/dim]\n")
        return 0

    def _query(self) -> int:
        source = self._ask("Query (or @file.soql): ")
        soql = read_text_file(source[1:], 'SOQL') if source.startswith('@') else source
        api = self._ask("API [standard/tooling]: ", choices=['standard', 'tooling'], default='standard')
        tooling = api.lower() == 'tooling'
        plan = not tooling and self._ask("Run Explain Plan? (yes/no): ",
                                         choices=['yes', 'no'], default='no').lower() in ('y', 'yes')
        return query_command(self.client, soql, tooling=tooling, plan=plan)

    def _rest(self) -> int:
        method = self._ask_required("Method: ", choices=METHODS).upper()
        resource = self._ask_required("Resource (e.g. /services/data/v60.0/limits): ")
        payload = None
        if method in BODY_METHODS:
            payload_path = self._ask("Payload JSON file (optional): ")
            payload = load_json_payload(payload_path) if payload_path else None
        return rest_command(self.client, method, resource, payload)

    def _track(self) -> int:
        since = self._ask("Changes since (YYYY-MM-DD, optional): ") or None
        username = self._ask("Last modified by username (optional): ") or None
        return track_command(self.client, since=since, username=username)

    def _bulk(self) -> int:
        sobject = self._ask_required("Object: ", default=self.last_sobject or '')
        operation = self._ask_required("Operation: ", choices=[op.value for op in BulkOperation])
        external_id = None
        if BulkOperation.parse(operation) is BulkOperation.UPSERT:
            external_id = self._ask_required("External ID field: ")
        data_path = self._ask_required("CSV file: ")
        self.last_sobject = sobject
        return bulk_command(self.client, self.config, sobject, operation, data_path,
                            external_id=external_id)

    def _apex(self) -> int:
        source = self._ask_required("Apex code (or @file.apex): ")
        apex_code = read_text_file(source[1:], 'Apex') if source.startswith('@') else source
        return apex_command(self.client, apex_code)
