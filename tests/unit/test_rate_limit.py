import threading

from starlette.requests import Request

from storefront.rate_limit import RateLimiter, client_ip

HOUR_MS = 3_600_000


class FakeClock:
    def __init__(self, now: int = 1_700_000_000_000):
        self.now = now

    def __call__(self) -> int:
        return self.now


def _request(headers: dict[str, str] | None = None, client=("10.0.0.9", 5555)) -> Request:
    scope = {
        "type": "http",
        "method": "POST",
        "path": "/api/auth/check-email",
        "headers": [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
        "client": client,
    }
    return Request(scope)


def test_sixth_call_in_window_is_denied():
    rl = RateLimiter(clock=FakeClock())
    results = [rl.check("email-check:1.2.3.4", 5, HOUR_MS) for _ in range(6)]

    assert [r.allowed for r in results] == [True] * 5 + [False]
    assert [r.remaining for r in results] == [4, 3, 2, 1, 0, 0]


def test_window_elapses_and_resets():
    clock = FakeClock()
    rl = RateLimiter(clock=clock)
    for _ in range(6):
        rl.check("k", 5, HOUR_MS)

    clock.now += HOUR_MS + 1
    r = rl.check("k", 5, HOUR_MS)

    assert r.allowed is True
    assert r.remaining == 4
    assert r.reset_at == clock.now + HOUR_MS


def test_boundary_is_still_inside_window():
    clock = FakeClock()
    rl = RateLimiter(clock=clock)
    first = rl.check("k", 1, 1000)
    clock.now = first.reset_at
    assert rl.check("k", 1, 1000).allowed is False


def test_keys_are_independent():
    rl = RateLimiter(clock=FakeClock())
    for _ in range(5):
        rl.check("a", 5, HOUR_MS)
    assert rl.check("a", 5, HOUR_MS).allowed is False
    assert rl.check("b", 5, HOUR_MS).allowed is True


def test_sweep_drops_only_lapsed_entries():
    clock = FakeClock()
    rl = RateLimiter(clock=clock)
    rl.check("old", 5, 1000)
    clock.now += 500
    rl.check("fresh", 5, HOUR_MS)
    clock.now += 1000

    assert rl.sweep() == 1
    assert len(rl) == 1


def test_concurrent_increments_are_not_lost():
    rl = RateLimiter(clock=FakeClock())
    allowed = []
    lock = threading.Lock()

    def worker():
        for _ in range(50):
            r = rl.check("burst", 100, HOUR_MS)
            if r.allowed:
                with lock:
                    allowed.append(r.remaining)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(allowed) == 100
    assert sorted(allowed) == list(range(100))


def test_result_headers():
    r = RateLimiter(clock=FakeClock()).check("k", 5, HOUR_MS)
    headers = r.headers(5)
    assert headers["X-RateLimit-Limit"] == "5"
    assert headers["X-RateLimit-Remaining"] == "4"
    assert headers["X-RateLimit-Reset"].startswith("2023-")


def test_client_ip_prefers_forwarded_first_hop():
    req = _request({"X-Forwarded-For": "203.0.113.5, 10.0.0.1", "X-Real-IP": "198.51.100.1"})
    assert client_ip(req) == "203.0.113.5"


def test_client_ip_fallbacks():
    assert client_ip(_request({"X-Real-IP": "198.51.100.1"})) == "198.51.100.1"
    assert client_ip(_request({"CF-Connecting-IP": "192.0.2.7"})) == "192.0.2.7"
    assert client_ip(_request()) == "10.0.0.9"
    assert client_ip(_request(client=None)) == "unknown"
