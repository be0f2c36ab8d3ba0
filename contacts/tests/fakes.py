"""Offline stand-ins for the external lookup ports."""

from contacts.confidence.lookups import LookupFailed


class FakeMxLookup:
    """Answers from a dict; domains in ``failing`` raise LookupFailed."""

    def __init__(self, answers=None, failing=(), default=False):
        self.answers = dict(answers or {})
        self.failing = set(failing)
        self.default = default
        self.calls = []

    async def has_mx(self, domain):
        self.calls.append(domain)
        if domain in self.failing:
            raise LookupFailed(f"dns down for {domain}")
        return self.answers.get(domain, self.default)


class FakeGeocoder:
    """Returns canned GeocodeResults keyed by lowercased address."""

    def __init__(self, results=None, fail=False):
        self.results = {k.lower(): v for k, v in (results or {}).items()}
        self.fail = fail
        self.calls = []

    async def geocode(self, address):
        self.calls.append(address)
        if self.fail:
            raise LookupFailed("geocoder unavailable")
        return self.results.get(address.lower())


class FakeProfileScanner:
    def __init__(self, result=None, fail=False):
        self.result = result if result is not None else {'exists': True}
        self.fail = fail
        self.calls = []

    async def scan(self, username, platform):
        self.calls.append((username, platform))
        if self.fail:
            raise LookupFailed("scanner unavailable")
        return self.result
