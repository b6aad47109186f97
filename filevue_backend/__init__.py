"""Backend for FileVue, a self-hosted file browser.

This package keeps FastAPI route handlers thin:
- path confinement to one root directory, including symlink checks
- session auth, CSRF and rate limiting
- bounded search and expiring link shares

Security note:
Every client path goes through ``sandbox.PathSandbox`` on every request.
Share ids plus access codes act as capability tokens, so never log codes
or bearer tokens.
"""

__version__ = "1.0.0"
