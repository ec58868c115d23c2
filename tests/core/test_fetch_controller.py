import threading

import pytest
import requests
import responses

from core.error_classifier import ErrorClassifier
from core.fetch_controller import FetchController, FetchStatus
from core.proxy_manager import ProxyEndpoint, ProxyManager
from core.retry_manager import RetryManager
from core.user_agent_rotation import UserAgentRotator
from models.target import Target

BASE_URL = 'https://strom.example/stadt/stromanbieter-in-'
URL = BASE_URL + 'hopferau.html'


def make_controller(proxy_manager=None, max_attempts=3, stop_event=None):
    retry_manager = RetryManager()
    retry_manager.initialize({'max_attempts': max_attempts, 'base_delay': 0, 'jitter_factor': 0})
    classifier = ErrorClassifier()
    classifier.initialize({'min_response_bytes': 200})
    return FetchController(
        proxy_manager=proxy_manager or ProxyManager([ProxyEndpoint.direct()]),
        user_agents=UserAgentRotator(['UA-1', 'UA-2', 'UA-3']),
        classifier=classifier,
        retry_manager=retry_manager,
        base_url=BASE_URL,
        stop_event=stop_event,
    )


@pytest.fixture
def target():
    return Target('87659', 'Hopferau')


@pytest.fixture
def page(page_builder):
    return page_builder(rows=[("lokaler Versorger", "0,38 Euro pro kWh")])


class TestFetchController:

    def test_url_for(self, target):
        assert make_controller().url_for(target) == URL

    @responses.activate
    def test_ok(self, target, page):
        responses.add(responses.GET, URL, body=page, status=200)

        result = make_controller().fetch(target)

        assert result.ok
        assert result.status is FetchStatus.OK
        assert result.document.find('td').get_text() == "lokaler Versorger"
        assert result.attempt_count == 1
        assert responses.calls[0].request.headers['Accept-Language'].startswith('de-DE')

    @responses.activate
    def test_not_found_is_terminal(self, target):
        responses.add(responses.GET, URL, body="Seite nicht gefunden", status=404)
        proxy_manager = ProxyManager([ProxyEndpoint.direct()])

        result = make_controller(proxy_manager).fetch(target)

        assert result.status is FetchStatus.NOT_FOUND
        assert result.status_code == 404
        assert not result.exhausted
        assert len(responses.calls) == 1
        assert proxy_manager.endpoints[0].failures == 0

    @responses.activate
    def test_captcha_exhausts_retries(self, target, page):
        blocked = page.replace("</body>", "<div>Bitte lösen Sie das CAPTCHA</div></body>")
        responses.add(responses.GET, URL, body=blocked, status=200)

        result = make_controller().fetch(target)

        assert result.status is FetchStatus.BLOCKED
        assert result.exhausted
        assert result.attempt_count == 3
        assert len(responses.calls) == 3
        agents = [call.request.headers['User-Agent'] for call in responses.calls]
        assert all(a != b for a, b in zip(agents, agents[1:]))

    @responses.activate
    def test_retry_then_success(self, target, page):
        responses.add(responses.GET, URL, body="Service Unavailable", status=503)
        responses.add(responses.GET, URL, body=page, status=200)

        result = make_controller().fetch(target)

        assert result.ok
        assert result.attempt_count == 2
        assert result.attempts[0].category == 'http'
        assert result.attempts[1].category == 'none'

    @responses.activate
    def test_each_retry_uses_another_endpoint(self, target):
        responses.add(responses.GET, URL, status=429, body="Too Many Requests")
        proxy_manager = ProxyManager([ProxyEndpoint.parse("10.0.0.1:8080"), ProxyEndpoint.parse("10.0.0.2:8080")],
                                     max_failures=10)

        result = make_controller(proxy_manager).fetch(target)

        endpoints = [attempt.endpoint for attempt in result.attempts]
        assert len(endpoints) == 3
        assert all(a != b for a, b in zip(endpoints, endpoints[1:]))
        assert sum(e.failures for e in proxy_manager.endpoints) == 3

    @responses.activate
    def test_transport_error(self, target):
        responses.add(responses.GET, URL, body=requests.exceptions.ConnectionError("connection reset"))

        result = make_controller(max_attempts=2).fetch(target)

        assert result.status is FetchStatus.TRANSPORT_ERROR
        assert result.exhausted
        assert result.attempt_count == 2
        assert "connection reset" in result.error

    @responses.activate
    def test_short_body_is_blocked(self, target):
        responses.add(responses.GET, URL, body="<html></html>", status=200)

        result = make_controller(max_attempts=1).fetch(target)

        assert result.status is FetchStatus.BLOCKED
        assert result.exhausted

    def test_cancelled_before_first_attempt(self, target):
        stop_event = threading.Event()
        stop_event.set()

        result = make_controller(stop_event=stop_event).fetch(target)

        assert result.status is FetchStatus.CANCELLED
        assert result.attempt_count == 0
