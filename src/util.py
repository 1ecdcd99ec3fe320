import sys
from contextlib import AbstractContextManager
from typing import Any, Callable

import emoji
from colors import red, yellow


class UserError(Exception):
    def __init__(self, message) -> None:
        super().__init__(message)
        self.message = message


class MissingArgument(UserError):
    pass


class ConfigLoadError(UserError):
    pass


class NoContext(UserError):
    pass


class MissingCredential(UserError):
    pass


class GitLabUnreachable(UserError):
    pass


class NotFound(UserError):
    pass


class ProvisioningError(UserError):
    pass


class TokenNotFound(UserError):
    pass


class SecretFetchError(UserError):
    pass


class EmptyToken(UserError):
    pass


class RegistrationError(UserError):
    pass


class Logger(AbstractContextManager):
    _global_indent: int = 0

    def __init__(self, header: str = None, indent_amount: int = 4, spacious: bool = True) -> None:
        super().__init__()
        self._header: str = header
        self._indent_amount: int = indent_amount
        self._spacious: bool = spacious
        self._indent: int = Logger._global_indent

    def __enter__(self) -> 'Logger':
        if self._header:
            self.info(self._header)
            if self._spacious:
                self.info('')

        Logger._global_indent += self._indent_amount
        self._indent: int = Logger._global_indent
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> Any:
        if self._spacious:
            self.info('')

        Logger._global_indent -= self._indent_amount
        self._indent: int = Logger._global_indent

        # never suppress the exception, let the caller handle it
        return None

    def _wrap_message(self, message: str, color: Callable[[str], str] = None) -> str:
        if color: message = color(message)
        lines: list = message.split('\n')
        return "\n".join([(' ' * self._indent) + emoji.emojize(line, language='alias') for line in lines])

    def info(self, message: str) -> None:
        print(self._wrap_message(message), file=sys.stdout)
        sys.stdout.flush()

    def warn(self, message: str) -> None:
        print(self._wrap_message(message, yellow), file=sys.stdout)
        sys.stdout.flush()

    def error(self, message: str) -> None:
        print(self._wrap_message(message, red), file=sys.stderr)
        sys.stderr.flush()
