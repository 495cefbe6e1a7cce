"""
Tests for command execution and the HTTP client
"""
import socket
import subprocess
import pytest
import requests
from unittest.mock import MagicMock

from conftest import http_response

from hostscale.core.exceptions import ProviderOperationFailed, ProviderOperationTimedOut
from hostscale.utils.commands import CommandResult, LocalCommandRunner, ServerRef, SshCommandRunner
from hostscale.utils.network import HTTPClient, new_session, tcp_reachable


class TestCommandResult:
    """Test result helpers"""

    def test_ok(self):
        assert CommandResult(argv=["true"], exit_code=0).ok
        assert not CommandResult(argv=["x"], exit_code=0, timed_out=True).ok

    def test_error_output_prefers_stderr(self):
        result = CommandResult(argv=["x"], exit_code=2, stdout="out", stderr=" err \n")

        assert result.error_output() == "err"
        assert CommandResult(argv=["x"], exit_code=3).error_output() == "exit code 3"

    def test_command_is_shell_quoted(self):
        assert CommandResult(argv=["echo", "a b"], exit_code=0).command == "echo 'a b'"


class TestLocalCommandRunner:
    """Test subprocess execution"""

    def test_success(self, mocker):
        run = mocker.patch("hostscale.utils.commands.subprocess.run")
        run.return_value = subprocess.CompletedProcess(["kubectl"], 0, stdout="done", stderr="")

        result = LocalCommandRunner().run(["kubectl", "apply", "-f", "-"], timeout=5, stdin="kind: x")

        assert result.ok
        assert result.stdout == "done"
        _, kwargs = run.call_args
        assert kwargs["input"] == "kind: x"
        assert kwargs["timeout"] == 5
        assert kwargs["env"] is None

    def test_env_is_merged_with_process_environment(self, mocker, monkeypatch):
        monkeypatch.setenv("PATH", "/usr/bin")
        run = mocker.patch("hostscale.utils.commands.subprocess.run")
        run.return_value = subprocess.CompletedProcess(["aws"], 0, stdout="", stderr="")

        LocalCommandRunner().run(["aws", "rds"], env={"AWS_ACCESS_KEY_ID": "AKIA"})

        env = run.call_args[1]["env"]
        assert env["AWS_ACCESS_KEY_ID"] == "AKIA"
        assert env["PATH"] == "/usr/bin"

    def test_timeout_is_reported_not_raised(self, mocker):
        mocker.patch(
            "hostscale.utils.commands.subprocess.run",
            side_effect=subprocess.TimeoutExpired(["sleep"], 1, output=b"partial")
        )

        result = LocalCommandRunner().run(["sleep", "10"], timeout=1)

        assert result.timed_out
        assert not result.ok
        assert result.stdout == "partial"

    def test_missing_binary(self, mocker):
        mocker.patch("hostscale.utils.commands.subprocess.run", side_effect=FileNotFoundError())

        result = LocalCommandRunner().run(["doctl", "databases", "list"])

        assert result.exit_code == 127
        assert "command not found" in result.stderr


class TestSshCommandRunner:
    """Test remote execution over paramiko"""

    def test_build_remote_command(self):
        runner = SshCommandRunner(ServerRef(host="10.0.0.5"))

        command = runner.build_remote_command(["kubectl", "get", "pods", "-l", "app=my shop"], env={"KUBECONFIG": "/etc/k 8s"}, cwd="/srv")

        assert command == "cd /srv && env KUBECONFIG='/etc/k 8s' kubectl get pods -l 'app=my shop'"

    def test_connection_failure(self, mocker):
        client = mocker.patch("hostscale.utils.commands.paramiko.SSHClient").return_value
        client.connect.side_effect = OSError("No route to host")

        result = SshCommandRunner(ServerRef(host="10.0.0.5")).run(["kubectl", "version"])

        assert result.exit_code == 255
        assert "No route to host" in result.stderr
        assert not result.timed_out

    def test_run_pipes_stdin(self, mocker):
        client = mocker.patch("hostscale.utils.commands.paramiko.SSHClient").return_value
        channel_stdin, channel_stdout, channel_stderr = MagicMock(), MagicMock(), MagicMock()
        channel_stdout.read.return_value = b"applied"
        channel_stderr.read.return_value = b""
        channel_stdout.channel.recv_exit_status.return_value = 0
        client.exec_command.return_value = (channel_stdin, channel_stdout, channel_stderr)

        server = ServerRef(host="10.0.0.5", user="deploy", port=2222)
        result = SshCommandRunner(server).run(["kubectl", "apply", "-f", "-"], timeout=7, stdin="kind: x")

        assert result.ok
        assert result.stdout == "applied"
        client.exec_command.assert_called_once_with("kubectl apply -f -", timeout=7)
        channel_stdin.write.assert_called_once_with("kind: x")
        assert client.connect.call_args[1]["username"] == "deploy"
        assert client.connect.call_args[1]["port"] == 2222
        client.close.assert_called_once()

    def test_remote_timeout(self, mocker):
        client = mocker.patch("hostscale.utils.commands.paramiko.SSHClient").return_value
        client.exec_command.side_effect = socket.timeout()

        result = SshCommandRunner(ServerRef(host="10.0.0.5")).run(["kubectl", "version"], timeout=1)

        assert result.timed_out

    def test_connection_reset_mid_stream(self, mocker):
        client = mocker.patch("hostscale.utils.commands.paramiko.SSHClient").return_value
        channel_stdout = MagicMock()
        channel_stdout.read.side_effect = ConnectionResetError("connection reset by peer")
        client.exec_command.return_value = (MagicMock(), channel_stdout, MagicMock())

        result = SshCommandRunner(ServerRef(host="10.0.0.5")).run(["kubectl", "get", "hpa"])

        assert result.exit_code == 255
        assert "connection reset by peer" in result.stderr
        assert not result.timed_out
        client.close.assert_called_once()

    def test_channel_closed_early(self, mocker):
        client = mocker.patch("hostscale.utils.commands.paramiko.SSHClient").return_value
        client.exec_command.side_effect = EOFError()

        result = SshCommandRunner(ServerRef(host="10.0.0.5")).run(["kubectl", "get", "hpa"])

        assert result.exit_code == 255


class TestHTTPClient:
    """Test the JSON API client"""

    def _client(self, response=None, error=None):
        session = MagicMock()
        if error is not None:
            session.request.side_effect = error
        else:
            session.request.return_value = response
        return HTTPClient("https://eu.api.ovh.com/1.0/", timeout=12, provider="ovh", session=session), session

    def test_build_url(self):
        client = HTTPClient("https://api.example.com/", session=MagicMock())

        assert client.build_url("/v1/items") == "https://api.example.com/v1/items"
        assert client.build_url("https://other.example.com/x") == "https://other.example.com/x"

    def test_get_returns_json(self):
        client, session = self._client(http_response(200, json_data={"id": "abc"}))

        assert client.get("/cloud/project", headers={"X-Test": "1"}) == {"id": "abc"}
        args, kwargs = session.request.call_args
        assert args == ("GET", "https://eu.api.ovh.com/1.0/cloud/project")
        assert kwargs["timeout"] == 12
        assert kwargs["headers"] == {"X-Test": "1"}

    def test_empty_body(self):
        client, _ = self._client(http_response(204))

        assert client.delete("/cloud/project/x") is None

    def test_non_json_body(self):
        response = http_response(200, text="<html>Service under maintenance</html>")
        response.json.side_effect = ValueError("Expecting value: line 1 column 1 (char 0)")
        client, _ = self._client(response)

        with pytest.raises(ProviderOperationFailed) as excinfo:
            client.post("/cloud/project/x/database/mysql")

        assert excinfo.value.operation == "POST /cloud/project/x/database/mysql"
        assert "maintenance" in excinfo.value.cause
        assert excinfo.value.context["status_code"] == 200

    def test_error_status_keeps_code(self):
        response = http_response(404, json_data={"message": "This service does not exist"})
        client, _ = self._client(response)

        with pytest.raises(ProviderOperationFailed) as excinfo:
            client.get("/cloud/project/x")

        assert excinfo.value.context["status_code"] == 404
        assert excinfo.value.cause == "This service does not exist"

    def test_timeout(self):
        client, _ = self._client(error=requests.Timeout("read timed out"))

        with pytest.raises(ProviderOperationTimedOut) as excinfo:
            client.post("/cloud/project/x/database/mysql")

        assert excinfo.value.context["timeout_seconds"] == 12

    def test_connection_error(self):
        client, _ = self._client(error=requests.ConnectionError("refused"))

        with pytest.raises(ProviderOperationFailed) as excinfo:
            client.get("/x")

        assert not isinstance(excinfo.value, ProviderOperationTimedOut)


class TestNetworkHelpers:
    """Test connectivity helpers"""

    def test_session_has_no_retries_by_default(self):
        session = new_session()

        assert session.get_adapter("https://example.com").max_retries.total == 0

    def test_tcp_reachable(self, mocker):
        connect = mocker.patch("hostscale.utils.network.socket.create_connection")

        assert tcp_reachable("db.example.com", 5432, timeout=2) is True
        connect.assert_called_once_with(("db.example.com", 5432), timeout=2)

    def test_tcp_unreachable(self, mocker):
        mocker.patch("hostscale.utils.network.socket.create_connection", side_effect=ConnectionRefusedError())

        assert tcp_reachable("db.example.com", 5432) is False
