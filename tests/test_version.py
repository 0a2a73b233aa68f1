from click.testing import CliRunner


def test_version_attribute() -> None:
    import locknote

    assert isinstance(locknote.__version__, str)
    assert locknote.__version__


def test_cli_reports_version() -> None:
    from locknote.cli import _package_version, cli

    runner = CliRunner()
    result = runner.invoke(cli, ["--version"])

    assert result.exit_code == 0
    assert "Locknote" in result.output
    assert _package_version() in result.output

    command_result = runner.invoke(cli, ["version"])

    assert command_result.exit_code == 0
    assert "Locknote" in command_result.output
    assert _package_version() in command_result.output
