"""
Pytest fixtures for the httpsession test suite.

Fixtures are organized by concern:
- http_mocking: HTTPX MockTransport routing, response builders, and mocked sessions
"""
