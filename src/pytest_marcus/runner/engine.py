"""Per-test execution engine.

This module defines the state machine executing a single test:

    Build -> Send -> WaitCheck -> (Retry -> Build) | Validate -> Save -> Done

Every attempt interpolates the read-only test definition into a fresh
request. While a wait condition is unmet the attempt is counted and the
engine sleeps before rebuilding the request; once it holds (or when no
condition is configured) the assertions are evaluated against the final
response, and the save directives are committed to the variable store.
"""

from datetime import timedelta
from json import loads
from logging import getLogger
from time import perf_counter, sleep
from typing import TYPE_CHECKING, Any, Self
from urllib.parse import urlencode

import httpx

from pytest_marcus.builtins.checkers import validate
from pytest_marcus.builtins.lookups import extract
from pytest_marcus.context import VariableStore
from pytest_marcus.errors import (
    DSLRuntimeError,
    FieldLookupError,
    RequestError,
    SaveExtractionError,
    WaitTimeoutError,
)
from pytest_marcus.schema import (
    CONTENT_TYPE_HEADER,
    FORM_CONTENT_TYPE,
    ResponseSnapshot,
    TestDefinition,
    WaitCondition,
)
from pytest_marcus.settings import RunnerSettings
from pytest_marcus.values import parse_expected, stringify, values_equal

if TYPE_CHECKING:
    from collections.abc import Callable
    from types import TracebackType

logger = getLogger(__name__)


def encode_form(body: str) -> str:
    """Encode `key=value` lines as an urlencoded form.

    Blank lines and lines without `=` are skipped, the last occurrence
    of a key wins, and keys are emitted in sorted order.

    Args:
        body: Form block text.

    Returns:
        The urlencoded body.
    """
    fields: dict[str, str] = {}
    for raw in body.split('\n'):
        line = raw.strip()
        if not line:
            continue
        key, separator, value = line.partition('=')
        if separator:
            fields[key] = value

    return urlencode(sorted(fields.items()))


def describe_wait(wait: WaitCondition) -> str:
    """Name a wait condition for error messages."""
    if wait.status is not None:
        return f'wait for status {wait.status}'

    return f'wait for field `{wait.field}`'


def check_wait(wait: WaitCondition, response: ResponseSnapshot, attempt: int) -> str | None:
    """Evaluate a wait condition against a response.

    Args:
        wait: Configured wait condition.
        response: Captured response of the attempt.
        attempt: Number of the attempt, used in the message.

    Returns:
        `None` if every configured condition holds, otherwise a message
        describing the first unmet one.
    """
    if wait.status is not None and response.status != wait.status:
        return f'wait for status {wait.status} failed: got {response.status} after {attempt} attempts'

    if wait.field is None:
        return None

    try:
        actual = extract(response.document or {}, wait.field)
    except FieldLookupError:
        return f'wait for field `{wait.field}` failed: field not found after {attempt} attempts'

    if not values_equal(actual, parse_expected(wait.value)):
        return (
            f'wait for field `{wait.field}` equals `{wait.value}` failed: '
            f'got `{stringify(actual)}` after {attempt} attempts'
        )

    return None


class TestExecutor:
    """Executor of single tests over a shared HTTP client.

    The executor is safe to share between threads: it keeps no per-test
    state, and the underlying `httpx.Client` pools connections in a
    thread-safe way.
    """

    __test__ = False

    def __init__(self, settings: RunnerSettings | None = None, *,
                 client: httpx.Client | None = None,
                 sleeper: 'Callable[[float], None]' = sleep) -> None:
        """Initialize the executor.

        Args:
            settings: Runner settings; resolved from the environment if omitted.
            client: HTTP client to use. A client owned by the executor
                is created when omitted and closed with the executor.
            sleeper: Function used to wait between attempts.
        """
        self.settings = settings or RunnerSettings()
        self.sleeper = sleeper

        self.owns_client = client is None
        self.client = client or httpx.Client(timeout=self.settings.timeout)

    def __enter__(self) -> Self:
        """Enter the executor context."""
        return self

    def __exit__(self, exc_type: type[BaseException] | None,
                 exc_value: BaseException | None,
                 traceback: 'TracebackType | None') -> None:
        """Close the executor on context exit."""
        self.close()

    def close(self) -> None:
        """Close the HTTP client if it is owned by the executor."""
        if self.owns_client:
            self.client.close()

    @property
    def params(self) -> dict[str, Any]:
        """Runtime parameters passed to assertion checkers."""
        return {'preview_limit': self.settings.preview_limit}

    def run(self, test: TestDefinition, store: VariableStore | None = None, *,
            filename: str | None = None) -> VariableStore:
        """Execute a test with unified error handling.

        Args:
            test: Test definition to execute.
            store: Variable store used for interpolation and updated by
                save directives; a fresh store is used when omitted.
            filename: Source file name for error reporting.

        Returns:
            The variable store, updated with saved values.

        Raises:
            DSLRuntimeError: Any failure of the test, with location context.
        """
        if store is None:
            store = VariableStore()

        try:
            return self.execute(test, store)

        except DSLRuntimeError as error:
            error.attach(
                test,
                context=store.snapshot(),
                filename=filename,
                test_name=test.name,
                attempt=getattr(error, 'attempts', None),
            )
            raise

        except Exception as base:
            raise DSLRuntimeError(f'{base!r}').attach(
                test,
                context=store.snapshot(),
                filename=filename,
                test_name=test.name,
            ) from base

    def execute(self, test: TestDefinition, store: VariableStore) -> VariableStore:
        """Execute a test through the retry, validation, and save stages.

        Args:
            test: Test definition to execute.
            store: Variable store used for interpolation and updated by
                save directives.

        Returns:
            The variable store, updated with saved values.

        Raises:
            RequestError: If the transport fails without a wait condition.
            WaitTimeoutError: If the wait condition is unmet after the
                maximum number of attempts.
            AssertionFailure: If an assertion does not hold.
            FileAccessError: If a referenced file cannot be read.
            SaveExtractionError: If a field to save cannot be extracted.
        """
        response = self.poll(test, store)

        validate(test.assertions, response, self.params)

        staged = {}
        for save in test.saves:
            try:
                staged[save.variable] = extract(response.document or {}, save.field)
            except FieldLookupError as base:
                raise SaveExtractionError(f'save field failed: {base.message}') from base

        store.update(staged)

        return store

    def poll(self, test: TestDefinition, store: VariableStore) -> ResponseSnapshot:
        """Send a test request until its wait condition holds.

        Args:
            test: Test definition to execute.
            store: Variable store used for interpolation.

        Returns:
            The response of the final attempt.

        Raises:
            RequestError: If the transport fails without a wait condition.
            WaitTimeoutError: If the wait condition is unmet after the
                maximum number of attempts.
        """
        wait = test.wait
        delay: timedelta = test.retry.delay or self.settings.retry_delay
        attempts: int = test.retry.attempts or self.settings.retry_max

        attempt = 0
        while True:
            attempt += 1

            try:
                response = self.send(self.build(test, store))

            except RequestError as error:
                if not wait.active:
                    raise
                reason = f'{describe_wait(wait)} failed: {error.message} after {attempt} attempts'

            else:
                reason = check_wait(wait, response, attempt) if wait.active else None
                if reason is None:
                    return response

            if attempt >= attempts:
                raise WaitTimeoutError(reason, attempts=attempt)

            logger.debug('%s: attempt %d of %d is unmet, retrying in %s',
                         test.name, attempt, attempts, delay)
            self.sleeper(delay.total_seconds())

    def build(self, test: TestDefinition, store: VariableStore) -> httpx.Request:
        """Interpolate a test definition into a fresh request.

        Args:
            test: Test definition template.
            store: Variable store used for interpolation.

        Returns:
            A request ready to be sent.

        Raises:
            RequestError: If the request URL is malformed.
        """
        headers = httpx.Headers(store.interpolate_map(test.headers))
        if content_type := store.interpolate(test.content_type):
            headers[CONTENT_TYPE_HEADER] = content_type

        content = store.interpolate(test.body)
        if content and content_type == FORM_CONTENT_TYPE:
            content = encode_form(content)

        try:
            return self.client.build_request(
                test.method,
                store.interpolate(test.url),
                headers=headers,
                content=content.encode('utf-8') if content else None,
            )

        except httpx.InvalidURL as base:
            raise RequestError(f'request failed: {base}') from base

    def send(self, request: httpx.Request) -> ResponseSnapshot:
        """Send a request and capture its response.

        The duration covers sending the request and reading the body.
        The body is decoded as JSON on a best-effort basis: only objects
        yield a document.

        Args:
            request: Request to send.

        Returns:
            The captured response.

        Raises:
            RequestError: On any transport failure.
        """
        logger.debug('Sending %s %s', request.method, request.url)

        start = perf_counter()
        try:
            response = self.client.send(request)
            content = response.read()
            response.close()

        except (httpx.HTTPError, httpx.InvalidURL) as base:
            raise RequestError(f'request failed: {base}') from base

        duration = timedelta(seconds=perf_counter() - start)

        try:
            document = loads(content)
        except ValueError:
            document = None

        return ResponseSnapshot(
            status=response.status_code,
            content=content,
            duration=duration,
            document=document if isinstance(document, dict) else None,
        )
