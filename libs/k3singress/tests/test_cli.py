"""Tests for the k3singress CLI."""

import sys

import pytest
import yaml

from k3singress.cli import main


@pytest.fixture
def ingress_yaml_file(tmp_path):
    """Create temporary ingress.yaml file."""
    file_path = tmp_path / "ingress.yaml"
    file_path.write_text(yaml.dump({
        "backends": [{"name": "web-80"}],
        "servers": [
            {
                "hostname": "example.com",
                "locations": [
                    {"path": "/", "backend": "web-80"},
                    {"path": "/admin", "backend": "web-80", "denied": "no secret"},
                ],
            },
        ],
    }))
    return str(file_path)


def run_cli(monkeypatch, *args):
    monkeypatch.setattr(sys, "argv", ["k3singress", *args])
    main()


class TestGenerate:
    def test_generate(self, ingress_yaml_file, tmp_path, monkeypatch, capsys):
        output = tmp_path / "out"
        run_cli(monkeypatch, "generate", "--ingress-yaml", ingress_yaml_file, "-o", str(output))

        text = (output / "ingress.conf").read_text()
        assert "location /admin {" in text
        assert "proxy_pass http://web-80;" in text
        assert "Servers: 1" in capsys.readouterr().out

    def test_missing_file(self, tmp_path, monkeypatch, capsys):
        with pytest.raises(SystemExit) as exc:
            run_cli(monkeypatch, "generate", "--ingress-yaml", str(tmp_path / "nope.yaml"))

        assert exc.value.code == 1
        assert "Error:" in capsys.readouterr().out


class TestList:
    def test_list(self, ingress_yaml_file, monkeypatch, capsys):
        run_cli(monkeypatch, "list", "--ingress-yaml", ingress_yaml_file)

        out = capsys.readouterr().out
        assert "example.com / -> web-80" in out
        assert "example.com /admin -> web-80 [denied]" in out
        assert "Total: 2 locations" in out
