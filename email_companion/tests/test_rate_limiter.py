import threading
import unittest

from email_companion.config import RateLimitConfig
from email_companion.rate_limiter import RateLimiter


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


class TestRateLimiter(unittest.TestCase):
    """Test cases for the per-key rate limiter"""

    def setUp(self):
        self.clock = FakeClock()
        self.limiter = RateLimiter(RateLimitConfig(max_calls=20, window_seconds=60), clock=self.clock)

    def test_twenty_first_call_in_window_is_rejected(self):
        for _ in range(20):
            self.assertTrue(self.limiter.check('ai-process'))
            self.clock.now += 1

        self.assertFalse(self.limiter.check('ai-process'))

    def test_call_after_window_is_allowed(self):
        for _ in range(20):
            self.limiter.check('ai-process')
        self.assertFalse(self.limiter.check('ai-process'))

        self.clock.now += 60
        self.assertTrue(self.limiter.check('ai-process'))

    def test_keys_are_independent(self):
        for _ in range(20):
            self.limiter.check('ai-process')

        self.assertFalse(self.limiter.check('ai-process'))
        self.assertTrue(self.limiter.check('mail-reply'))
        self.assertTrue(self.limiter.check('attachment-summary'))

    def test_rejected_calls_are_not_counted(self):
        for _ in range(20):
            self.limiter.check('file-analysis')
        for _ in range(5):
            self.assertFalse(self.limiter.check('file-analysis'))

        self.assertEqual(self.limiter.remaining('file-analysis'), 0)
        self.clock.now += 61
        self.assertEqual(self.limiter.remaining('file-analysis'), 20)

    def test_reset(self):
        for _ in range(20):
            self.limiter.check('ai-process')
        self.limiter.reset('ai-process')
        self.assertTrue(self.limiter.check('ai-process'))

    def test_concurrent_checks_admit_exactly_the_limit(self):
        admitted = []
        lock = threading.Lock()

        def worker():
            for _ in range(10):
                if self.limiter.check('shared'):
                    with lock:
                        admitted.append(1)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(len(admitted), 20)


if __name__ == '__main__':
    unittest.main()
