"""upterm-action modules - Self-contained bricks following the brick philosophy

Each module is a self-contained component with clear contracts:
- Executor: Run external commands and capture output
- Capabilities: Probe whether session tools are installed
- Installer: Install upterm and tmux per platform
- SSH Key Manager: Generate the runner's SSH key pairs
- SSH Client Config: Maintain the server's ~/.ssh/config block
- Known Hosts: Trust the upterm server
- Key Provider: Fetch users' public keys from GitHub
- SSH Environment: Facade over the SSH setup steps
"""
