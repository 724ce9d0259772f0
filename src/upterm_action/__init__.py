"""upterm-action - interactive debugging sessions for CI jobs

Philosophy:
- Ruthless simplicity
- Brick architecture (self-contained modules)
- Best-effort setup, fatal only where a session cannot work
- Fail fast with helpful guidance

Installs upterm and tmux on the runner, prepares SSH keys and host trust,
authorizes GitHub users by their registered public keys, starts a shared
terminal session and waits until the session is released.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
