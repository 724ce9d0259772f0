"""Tests for SSH key pair management."""

from pathlib import Path

from tests.conftest import failed, ok

from upterm_action.modules.ssh_keys import SSHKeyManager


def fake_keygen(cmd):
    """Stand-in for ssh-keygen that writes both key files."""
    private_path = Path(cmd[cmd.index("-f") + 1])
    private_path.write_text("PRIVATE KEY")
    private_path.with_name(private_path.name + ".pub").write_text("ssh-ed25519 AAAA runner")
    return ok()


class TestEnsureKeys:
    """Test key pair generation and reuse."""

    def test_generates_rsa_and_ed25519(self, fake_executor, tmp_path):
        fake_executor.script(["ssh-keygen"], fake_keygen)
        ssh_dir = tmp_path / ".ssh"

        pairs = SSHKeyManager(ssh_dir, fake_executor).ensure_keys()

        assert [p.algorithm for p in pairs] == ["rsa", "ed25519"]
        assert (ssh_dir / "id_rsa").exists()
        assert (ssh_dir / "id_ed25519").exists()
        keygen_calls = fake_executor.ran("ssh-keygen")
        assert keygen_calls[0] == [
            "ssh-keygen", "-q", "-t", "rsa", "-N", "", "-f", str(ssh_dir / "id_rsa"),
        ]

    def test_permissions(self, fake_executor, tmp_path):
        fake_executor.script(["ssh-keygen"], fake_keygen)
        ssh_dir = tmp_path / ".ssh"

        SSHKeyManager(ssh_dir, fake_executor).ensure_keys()

        assert ssh_dir.stat().st_mode & 0o777 == 0o700
        assert (ssh_dir / "id_ed25519").stat().st_mode & 0o777 == 0o600
        assert (ssh_dir / "id_ed25519.pub").stat().st_mode & 0o777 == 0o644

    def test_existing_key_is_not_regenerated(self, fake_executor, temp_home_dir):
        ssh_dir = temp_home_dir / ".ssh"
        (ssh_dir / "id_rsa").write_text("existing")
        (ssh_dir / "id_ed25519").write_text("existing")

        pairs = SSHKeyManager(ssh_dir, fake_executor).ensure_keys()

        assert len(pairs) == 2
        assert fake_executor.ran("ssh-keygen") == []
        assert (ssh_dir / "id_rsa").read_text() == "existing"

    def test_rerun_is_idempotent(self, fake_executor, tmp_path):
        fake_executor.script(["ssh-keygen"], fake_keygen)
        manager = SSHKeyManager(tmp_path / ".ssh", fake_executor)

        manager.ensure_keys()
        manager.ensure_keys()

        assert len(fake_executor.ran("ssh-keygen")) == 2

    def test_generation_failure_is_tolerated(self, fake_executor, tmp_path):
        fake_executor.script(["ssh-keygen", "-q", "-t", "rsa"], failed("unsupported"))
        fake_executor.script(["ssh-keygen", "-q", "-t", "ed25519"], fake_keygen)

        pairs = SSHKeyManager(tmp_path / ".ssh", fake_executor).ensure_keys()

        assert [p.algorithm for p in pairs] == ["ed25519"]

    def test_fixes_open_directory_permissions(self, fake_executor, tmp_path):
        ssh_dir = tmp_path / ".ssh"
        ssh_dir.mkdir(mode=0o755)
        ssh_dir.chmod(0o755)

        SSHKeyManager(ssh_dir, fake_executor).ensure_ssh_directory()

        assert ssh_dir.stat().st_mode & 0o777 == 0o700
