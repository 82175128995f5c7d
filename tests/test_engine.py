"""Tests for the per-test execution engine."""

from collections.abc import Callable
from datetime import timedelta
from itertools import chain, repeat
from typing import TYPE_CHECKING, Any

import httpx
import pytest

from pytest_marcus.context import VariableStore
from pytest_marcus.core import DocumentParser
from pytest_marcus.errors import (
    AssertionFailure,
    DSLRuntimeError,
    RequestError,
    SaveExtractionError,
    WaitTimeoutError,
)
from pytest_marcus.runner import TestExecutor
from pytest_marcus.runner.engine import encode_form
from pytest_marcus.schema import (
    FORM_CONTENT_TYPE,
    JSON_CONTENT_TYPE,
    Assertion,
    AssertionKind,
    RetryPolicy,
    SaveField,
    TestDefinition,
    WaitCondition,
)

if TYPE_CHECKING:
    from pytest_marcus.settings import RunnerSettings

type ExecutorFactory = Callable[..., TestExecutor]


def make_test(**kwargs: Any) -> TestDefinition:
    """Build a test definition with a default name and URL."""
    return TestDefinition(**{'name': 'Sample', 'url': 'https://api.test/items', **kwargs})


def replay(*responses: httpx.Response | Exception) -> Callable[[httpx.Request], httpx.Response]:
    """Build a handler answering with the given responses in order.

    The last response is repeated once the others are exhausted, each
    answer being a fresh copy; exceptions are raised instead of being
    returned.
    """
    queue = chain(responses, repeat(responses[-1]))

    def handler(request: httpx.Request) -> httpx.Response:  # noqa: ARG001
        response = next(queue)
        if isinstance(response, Exception):
            raise response
        return httpx.Response(response.status_code, headers=response.headers, content=response.content)

    return handler


@pytest.mark.parametrize('body, expected', (
    pytest.param('b=2\na=1', 'a=1&b=2', id='sorted keys'),
    pytest.param('a=1\nb=2\na=3', 'a=3&b=2', id='last key wins'),
    pytest.param('\n  a = x y \n', 'a+=x+y', id='stripped lines'),
    pytest.param('flag\nq=a&b', 'q=a%26b', id='lines without separator'),
    pytest.param('', '', id='empty'),
))
def test_encode_form(body: str, expected: str) -> None:
    """Encode form lines into an urlencoded body."""
    assert encode_form(body) == expected


def test_build_request(make_executor: ExecutorFactory) -> None:
    """Interpolate the URL, headers, and body of a request."""
    executor = make_executor(replay(httpx.Response(200)))
    test = make_test(
        method='POST',
        url='https://api.test/users/{{id}}',
        headers={'Authorization': 'Bearer {{token}}'},
        body='{"id": {{id}}}',
        content_type=JSON_CONTENT_TYPE,
    )

    request = executor.build(test, VariableStore(id=7, token='abc'))

    assert request.method == 'POST'
    assert str(request.url) == 'https://api.test/users/7'
    assert request.headers['Authorization'] == 'Bearer abc'
    assert request.headers['Content-Type'] == JSON_CONTENT_TYPE
    assert request.content == b'{"id": 7}'


def test_build_form_request(make_executor: ExecutorFactory) -> None:
    """Encode form bodies and send a single Content-Type."""
    executor = make_executor(replay(httpx.Response(200)))
    test = make_test(
        method='POST',
        headers={'content-type': FORM_CONTENT_TYPE},
        body='b=2\na=1\na={{value}}',
        content_type=FORM_CONTENT_TYPE,
    )

    request = executor.build(test, VariableStore(value=3))

    assert request.content == b'a=3&b=2'
    assert request.headers.get_list('Content-Type') == [FORM_CONTENT_TYPE]


def test_send_per_test_content_type(make_executor: ExecutorFactory) -> None:
    """Send the per-test Content-Type over a frontmatter default."""
    sent: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        sent.append(request)
        return httpx.Response(200)

    test, = DocumentParser().parse(
        '---\nheaders:\n  content-type: text/plain\n---\n'
        '## Upload\nPUT https://api.test/x\n- Content-Type: application/xml\n\n```json\n<x/>\n```\n',
    )

    make_executor(handler).run(test, VariableStore())

    request, = sent
    assert request.headers.get_list('Content-Type') == ['application/xml']


def test_build_without_body(make_executor: ExecutorFactory) -> None:
    """Send no content for tests without a body."""
    executor = make_executor(replay(httpx.Response(200)))

    request = executor.build(make_test(), VariableStore())

    assert request.content == b''
    assert 'Content-Type' not in request.headers


def test_build_invalid_url(make_executor: ExecutorFactory) -> None:
    """Report malformed URLs as request errors."""
    executor = make_executor(replay(httpx.Response(200)))

    with pytest.raises(RequestError, match=r'^request failed: '):
        executor.build(make_test(url='https://api.test/a\nb'), VariableStore())


def test_send_captures_json_object(make_executor: ExecutorFactory) -> None:
    """Decode object bodies into a document."""
    executor = make_executor(replay(httpx.Response(201, content=b'{"id":7}')))

    response = executor.send(httpx.Request('GET', 'https://api.test/'))

    assert response.status == 201
    assert response.document == {'id': 7}
    assert response.content == b'{"id":7}'
    assert response.duration >= timedelta()


@pytest.mark.parametrize('response', (
    pytest.param(httpx.Response(200, json=[1, 2]), id='json array'),
    pytest.param(httpx.Response(200, text='plain'), id='plain text'),
    pytest.param(httpx.Response(204), id='empty body'),
))
def test_send_without_document(make_executor: ExecutorFactory, response: httpx.Response) -> None:
    """Keep no document for bodies that are not JSON objects."""
    executor = make_executor(replay(response))

    assert executor.send(httpx.Request('GET', 'https://api.test/')).document is None


def test_run_passes(make_executor: ExecutorFactory) -> None:
    """Validate assertions and save fields into the store."""
    executor = make_executor(replay(httpx.Response(201, json={'json': {'id': 7}, 'token': 'abc'})))
    test = make_test(
        assertions=(Assertion(kind=AssertionKind.STATUS, value='201'),),
        saves=(
            SaveField(field='json.id', variable='user_id'),
            SaveField(field='token', variable='token'),
        ),
    )

    store = executor.run(test, VariableStore(other=1))

    assert store == {'other': 1, 'user_id': 7, 'token': 'abc'}
    executor.sleeper.assert_not_called()


def test_wait_for_status(make_executor: ExecutorFactory) -> None:
    """Retry until the awaited status is returned."""
    executor = make_executor(replay(
        httpx.Response(500),
        httpx.Response(500),
        httpx.Response(200, json={'state': 'done'}),
    ))
    test = make_test(
        wait=WaitCondition(status=200),
        retry=RetryPolicy(attempts=3, delay=timedelta(milliseconds=250)),
        assertions=(Assertion(kind=AssertionKind.FIELD_EQUALS, field='state', value='done'),),
    )

    executor.run(test)

    assert executor.sleeper.call_count == 2
    executor.sleeper.assert_called_with(0.25)


def test_wait_for_status_timeout(make_executor: ExecutorFactory) -> None:
    """Fail once the attempts are exhausted."""
    executor = make_executor(replay(httpx.Response(500), httpx.Response(500), httpx.Response(200)))
    test = make_test(wait=WaitCondition(status=200), retry=RetryPolicy(attempts=2))

    with pytest.raises(WaitTimeoutError) as error:
        executor.run(test, filename='test_jobs.md')

    assert error.value.message == 'wait for status 200 failed: got 500 after 2 attempts'
    assert error.value.attempts == 2
    assert error.value.context['attempt'] == 2
    executor.sleeper.assert_called_once_with(0.01)


def test_wait_uses_default_attempts(make_executor: ExecutorFactory, settings: 'RunnerSettings') -> None:
    """Fall back to the configured attempts and delay."""
    executor = make_executor(replay(httpx.Response(503)))

    with pytest.raises(WaitTimeoutError, match=r'after 3 attempts'):
        executor.run(make_test(wait=WaitCondition(status=200)))

    assert executor.sleeper.call_count == settings.retry_max - 1


@pytest.mark.parametrize('responses, message', (
    pytest.param(
        (httpx.Response(200, json={'state': 'pending'}),),
        'wait for field `state` equals `done` failed: got `pending` after 2 attempts',
        id='different value',
    ),
    pytest.param(
        (httpx.Response(200, json={}),),
        'wait for field `state` failed: field not found after 2 attempts',
        id='missing field',
    ),
    pytest.param(
        (httpx.Response(200, text='busy'),),
        'wait for field `state` failed: field not found after 2 attempts',
        id='not json',
    ),
))
def test_wait_for_field_timeout(make_executor: ExecutorFactory,
                                responses: tuple[httpx.Response, ...], message: str) -> None:
    """Describe the unmet field condition of the last attempt."""
    executor = make_executor(replay(*responses))
    test = make_test(wait=WaitCondition(field='state', value='done'), retry=RetryPolicy(attempts=2))

    with pytest.raises(WaitTimeoutError) as error:
        executor.run(test)

    assert error.value.message == message


def test_wait_for_status_and_field(make_executor: ExecutorFactory) -> None:
    """Require both conditions to hold on the same response."""
    executor = make_executor(replay(
        httpx.Response(200, json={'state': 'pending'}),
        httpx.Response(202, json={'state': 'done'}),
        httpx.Response(200, json={'state': 'done'}),
    ))
    test = make_test(wait=WaitCondition(status=200, field='state', value='done'))

    executor.run(test)

    assert executor.sleeper.call_count == 2


def test_transport_error_without_wait(make_executor: ExecutorFactory) -> None:
    """Fail immediately on transport errors when nothing is awaited."""
    executor = make_executor(replay(httpx.ConnectError('connection refused')))

    with pytest.raises(RequestError, match=r'^request failed: connection refused'):
        executor.run(make_test())

    executor.sleeper.assert_not_called()


def test_transport_error_while_waiting(make_executor: ExecutorFactory) -> None:
    """Count transport errors as unmet attempts of a wait condition."""
    executor = make_executor(replay(
        httpx.ConnectError('connection refused'),
        httpx.Response(200),
    ))
    test = make_test(wait=WaitCondition(status=200))

    executor.run(test)

    assert executor.sleeper.call_count == 1


def test_transport_error_exhausts_wait(make_executor: ExecutorFactory) -> None:
    """Name the transport error when the last attempt failed to connect."""
    executor = make_executor(replay(httpx.ConnectError('connection refused')))
    test = make_test(wait=WaitCondition(status=200), retry=RetryPolicy(attempts=2))

    with pytest.raises(WaitTimeoutError) as error:
        executor.run(test)

    assert error.value.message == (
        'wait for status 200 failed: request failed: connection refused after 2 attempts'
    )


def test_assertion_failure_skips_saves(make_executor: ExecutorFactory) -> None:
    """Leave the store unchanged when an assertion fails."""
    executor = make_executor(replay(httpx.Response(500, content=b'{"id":7}')))
    test = make_test(
        assertions=(Assertion(kind=AssertionKind.STATUS, value='200'),),
        saves=(SaveField(field='id', variable='user_id'),),
    )
    store = VariableStore(token='abc')

    with pytest.raises(AssertionFailure) as error:
        executor.run(test, store, filename='test_users.md')

    assert store == {'token': 'abc'}
    assert error.value.preview == '{"id":7}'
    assert error.value.context['filename'] == 'test_users.md'
    assert error.value.context['test_name'] == 'Sample'
    assert error.value.context['context'] == {'token': 'abc'}


def test_saves_are_committed_together(make_executor: ExecutorFactory) -> None:
    """Store nothing when any save directive fails."""
    executor = make_executor(replay(httpx.Response(200, json={'id': 7})))
    test = make_test(saves=(
        SaveField(field='id', variable='user_id'),
        SaveField(field='json.token', variable='token'),
    ))
    store = VariableStore()

    with pytest.raises(SaveExtractionError, match=r"^save field failed: field 'json\.token' not found$"):
        executor.run(test, store)

    assert store == {}


def test_save_from_non_json_body(make_executor: ExecutorFactory) -> None:
    """Fail saves when the response has no JSON object."""
    executor = make_executor(replay(httpx.Response(200, json=[{'id': 7}])))
    test = make_test(saves=(SaveField(field='id', variable='user_id'),))

    with pytest.raises(SaveExtractionError):
        executor.run(test)


def test_unexpected_error_is_wrapped(make_executor: ExecutorFactory) -> None:
    """Wrap unexpected exceptions into runtime errors with context."""
    executor = make_executor(replay(RuntimeError('boom')))

    with pytest.raises(DSLRuntimeError, match=r"RuntimeError\('boom'\)") as error:
        executor.run(make_test())

    assert isinstance(error.value.__cause__, RuntimeError)
    assert error.value.context['test_name'] == 'Sample'


def test_owned_client_is_closed(settings: 'RunnerSettings') -> None:
    """Close the HTTP client created by the executor."""
    with TestExecutor(settings) as executor:
        assert executor.owns_client

    assert executor.client.is_closed


def test_shared_client_is_kept_open(settings: 'RunnerSettings') -> None:
    """Leave a client passed by the caller open."""
    with httpx.Client() as client:
        with TestExecutor(settings, client=client):
            pass

        assert not client.is_closed
