from filtertrack.services import client_service

CODE = "OG971390|202630010002"


class TestCli:
    def test_scan_and_show(self, app, db_session):
        runner = app.test_cli_runner()

        result = runner.invoke(args=["units", "scan", CODE, "--identity", "ana", "--role", "mechanic"])
        assert result.exit_code == 0
        assert "CREATED" in result.output

        result = runner.invoke(args=[
            "units", "scan", CODE, "--identity", "leo", "--role", "dispatcher", "--client", "ACME",
        ])
        assert "ADVANCED" in result.output

        result = runner.invoke(args=["units", "show", CODE])
        assert "DISPATCHED" in result.output
        assert "ACME#1" in result.output

    def test_scan_reports_missing_install_data(self, app, db_session):
        runner = app.test_cli_runner()
        runner.invoke(args=["units", "scan", CODE, "--identity", "ana", "--role", "mechanic"])
        runner.invoke(args=["units", "scan", CODE, "--identity", "leo", "--role", "dispatcher", "--client", "ACME"])

        result = runner.invoke(args=["units", "scan", CODE, "--identity", "tom", "--role", "mechanic", "--plate", "ABC"])
        assert "NEEDS_DATA" in result.output
        assert "odometer" in result.output

    def test_clients_commands(self, app, db_session):
        runner = app.test_cli_runner()

        result = runner.invoke(args=["clients", "create", "Acme"])
        assert "PASS" in result.output
        assert client_service.get_client("acme") is not None

        result = runner.invoke(args=["clients", "list"])
        assert "Acme" in result.output

        result = runner.invoke(args=["clients", "delete", "Acme"])
        assert "PASS" in result.output

    def test_records_stats(self, app, db_session):
        runner = app.test_cli_runner()
        runner.invoke(args=["units", "scan", CODE, "--identity", "ana", "--role", "mechanic"])

        result = runner.invoke(args=["records", "stats"])
        assert "Total: 1" in result.output

    def test_bad_code(self, app, db_session):
        result = app.test_cli_runner().invoke(args=["units", "scan", "garbage", "--identity", "a", "--role", "mechanic"])
        assert "FAIL" in result.output

    def test_blank_client_name_fails_cleanly(self, app, db_session):
        result = app.test_cli_runner().invoke(args=["clients", "delete", "  "])
        assert result.exit_code == 0
        assert "FAIL" in result.output

    def test_store_outage_fails_cleanly(self, app, db_session, monkeypatch):
        from filtertrack.services import projection_service, reporting_service
        from filtertrack.services.ledger_service import StoreUnavailableError

        def _down(*args, **kwargs):
            raise StoreUnavailableError("projection")

        monkeypatch.setattr(projection_service, "project", _down)
        monkeypatch.setattr(reporting_service, "compute_stats", _down)
        monkeypatch.setattr(client_service, "delete_client", _down)
        runner = app.test_cli_runner()

        for args in (["projections", "show"], ["records", "stats"], ["clients", "delete", "Acme"]):
            result = runner.invoke(args=args)
            assert result.exit_code == 0
            assert "FAIL" in result.output
