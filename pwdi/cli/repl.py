from __future__ import annotations

import sys
from pathlib import Path
from typing import Callable, Optional, TextIO

from pwdi.client.http import PwdiHttpClient
from pwdi.client.transfer import TransferResult, pull_directory, push_directory
from pwdi.core.bundler import Bundler

WELCOME = """pwdi client

Type commands to configure the connection to the server and transfer
the current folder to or from the PWD instance.

Type 'help' for a list of commands."""

HELP = """Commands:

help          Show this message
server        Show the server URL
server <url>  Set the server URL to <url>
proxy         Show whether the system proxy is being used
proxy <bool>  Set whether the system proxy is used
token         Show the token
token <key>   Set the token to <key>
push          Push the current local directory to the server
pull          Pull the server's directory into the current local directory
exit          Close this pwdi client session"""

PROMPT = "\npwdi-client> "

ClientFactory = Callable[[str, str, bool], PwdiHttpClient]


def _default_client_factory(server: str, token: str, use_proxy: bool) -> PwdiHttpClient:
    return PwdiHttpClient(server, token, use_proxy=use_proxy)


class ClientRepl:
    """Interactive session that pushes/pulls one working directory.

    State (server URL, proxy flag, token) lives on the instance; a fresh HTTP
    client is built for every transfer so changes apply immediately.
    """

    def __init__(
        self,
        *,
        working_directory: Path = Path("."),
        bundler: Optional[Bundler] = None,
        stdin: TextIO = sys.stdin,
        stdout: TextIO = sys.stdout,
        client_factory: ClientFactory = _default_client_factory,
    ):
        self.server = "http://localhost"
        self.proxy = False
        self.token = "not-set"
        self.working_directory = Path(working_directory)
        self.bundler = bundler if bundler is not None else Bundler()
        self._in = stdin
        self._out = stdout
        self._client_factory = client_factory

    def _print(self, text: str = "", end: str = "\n") -> None:
        print(text, end=end, file=self._out)
        self._out.flush()

    def _client(self) -> PwdiHttpClient:
        return self._client_factory(self.server, self.token, self.proxy)

    def _report(self, result: TransferResult) -> None:
        self._print(result.message)

    def handle(self, line: str) -> bool:
        """Run one command. Returns False when the session should end."""

        clean = line.strip()
        if clean in ("exit", ""):
            self._print("Bye!")
            return False

        if clean == "help":
            self._print(HELP)
        elif clean == "server":
            self._print(f"The value of the server URL is: {self.server!r}")
        elif clean.startswith("server "):
            self.server = clean[len("server "):].strip()
            self._print(f"Set the value of the server URL to: {self.server!r}")
        elif clean == "proxy":
            self._print(f"The value of the proxy flag is: {self.proxy!r}")
        elif clean.startswith("proxy "):
            value = clean[len("proxy "):].strip()
            if value in ("true", "false"):
                self.proxy = value == "true"
                self._print(f"Set the value of the proxy flag to: {self.proxy!r}")
            else:
                self._print("Invalid value given to the proxy flag. Use 'true' or 'false' only.")
        elif clean == "token":
            self._print(f"The value of the token is: {self.token!r}")
        elif clean.startswith("token "):
            self.token = clean[len("token "):].strip()
            self._print(f"Set the value of the token to: {self.token!r}")
        elif clean == "push":
            self._print("Bundling current directory...")
            self._report(
                push_directory(self._client(), self.bundler, self.working_directory, self._print)
            )
        elif clean == "pull":
            self._print("Pulling bundle from server...")
            self._report(
                pull_directory(self._client(), self.bundler, self.working_directory, self._print)
            )
        else:
            self._print("Invalid command. Use 'help' for a list of valid options.")
        return True

    def run(self) -> int:
        """Read commands until `exit`, an empty line or end of input."""

        self._print(WELCOME)
        self._print(PROMPT, end="")
        with self.bundler:
            while True:
                line = self._in.readline()
                if not line.endswith("\n"):
                    self._print()
                if not self.handle(line):
                    break
                self._print(PROMPT, end="")
        return 0
