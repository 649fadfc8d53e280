import json

import pytest
from click.testing import CliRunner
from meter.cli import cli


@pytest.fixture
def invoke(tmp_path, monkeypatch):
    monkeypatch.setenv("METER_TARIFFS_PATH", str(tmp_path / "missing.yaml"))
    db_path = str(tmp_path / "meter.db")
    runner = CliRunner()

    def run(*args, **kwargs):
        return runner.invoke(cli, ["--db-path", db_path, *args], **kwargs)

    return run


@pytest.fixture
def with_readings(invoke):
    invoke("reading", "add", "10500", "--date", "2023-10-01", "--id", "1")
    invoke("reading", "add", "10620", "--date", "2023-10-15", "--id", "2")
    return invoke


def test_database_init_and_stats(invoke):
    result = invoke("database", "init")
    assert result.exit_code == 0
    assert "Database initialized" in result.output

    result = invoke("database", "stats")
    assert result.exit_code == 0
    assert "Readings" in result.output


def test_database_init_seeds_tariffs_from_yaml(invoke, tmp_path, monkeypatch):
    config = tmp_path / "tariffs.yaml"
    config.write_text(
        "tusd: {rate_per_unit: 0.5}\n"
        "te: {rate_per_unit: 0.4}\n"
        "flag_surcharge: {label: Vermelha, rate_per_unit: 0.04}\n"
        "public_lighting: {mode: fixed, amount: 10}\n"
    )
    monkeypatch.setenv("METER_TARIFFS_PATH", str(config))

    result = invoke("database", "init")
    assert "Loaded tariffs" in result.output

    data = json.loads(invoke("tariff", "show", "--json").output)
    assert data["flag_surcharge"]["label"] == "Vermelha"


def test_reading_add_shows_preview(invoke):
    result = invoke("reading", "add", "10500", "--date", "2023-10-01")
    assert result.exit_code == 0
    assert "Saved reading 10.500 on 2023-10-01" in result.output
    assert "Consumption" not in result.output

    result = invoke("reading", "add", "10620", "--date", "2023-10-15")
    assert "Consumption: 120 kWh" in result.output
    assert "Partial cost: R$ 111,00" in result.output


def test_reading_add_warns_on_decrease(with_readings):
    result = with_readings("reading", "add", "10500", "--date", "2023-10-20")
    assert result.exit_code == 0
    assert "Consumption: 0 kWh" in result.output
    assert "Meter went down from 10.620 on 2023-10-15 to 10.500 on 2023-10-20" in result.output
    assert "That interval counts as 0 kWh" in result.output


def test_reading_add_backdated_compares_with_reading_before_it(with_readings):
    result = with_readings("reading", "add", "10560", "--date", "2023-10-08")
    assert result.exit_code == 0
    assert "Previous reading: 10.500 on 2023-10-01" in result.output
    assert "Consumption: 60 kWh" in result.output
    assert "Partial cost: R$ 63,00" in result.output
    assert "Meter went down" not in result.output


def test_reading_add_backdated_above_next_reading_warns(with_readings):
    result = with_readings("reading", "add", "10700", "--date", "2023-10-08")
    assert result.exit_code == 0
    assert "Consumption: 200 kWh" in result.output
    assert "Meter went down from 10.700 on 2023-10-08 to 10.620 on 2023-10-15" in result.output


def test_reading_add_rejects_negative(invoke):
    result = invoke("reading", "add", "--date", "2023-10-01", "--", "-5")
    assert result.exit_code == 1
    assert "Error" in result.output


def test_reading_edit_and_delete(with_readings):
    result = with_readings("reading", "edit", "2", "--value", "10650")
    assert result.exit_code == 0

    rows = json.loads(with_readings("history", "--json").output)
    assert rows[1]["consumption_kwh"] == 150

    result = with_readings("reading", "delete", "2", "--yes")
    assert result.exit_code == 0
    assert len(json.loads(with_readings("history", "--json").output)) == 1

    result = with_readings("reading", "delete", "2", "--yes")
    assert result.exit_code == 1
    assert "No reading with id 2" in result.output


def test_reading_edit_needs_a_change(with_readings):
    result = with_readings("reading", "edit", "2")
    assert result.exit_code == 1


def test_reading_delete_can_be_cancelled(with_readings):
    result = with_readings("reading", "delete", "2", input="n\n")
    assert "Cancelled" in result.output
    assert len(json.loads(with_readings("history", "--json").output)) == 2


def test_reading_list(with_readings):
    result = with_readings("reading", "list")
    assert result.exit_code == 0
    assert "2023-10-15" in result.output
    assert "initial" in result.output


def test_reading_import_and_export(invoke, tmp_path):
    csv_path = tmp_path / "in.csv"
    csv_path.write_text("date,value\n2023-10-01,10500\n2023-10-15,10620\n")

    result = invoke("reading", "import", "--csv", str(csv_path))
    assert "Imported 2 readings" in result.output

    out = tmp_path / "out.csv"
    result = invoke("reading", "export", "--csv", str(out))
    assert "Exported 2 readings" in result.output
    assert out.read_text().startswith("date,value,id")


def test_dashboard_json(with_readings):
    result = with_readings("dashboard", "--date", "2023-10-31", "--json")
    data = json.loads(result.output)

    assert data["total_kwh"] == 120
    assert data["costs"]["total"] == 111.0
    assert data["projection"]["projected_cost"] == 227.57


def test_dashboard_text(with_readings):
    result = with_readings("dashboard", "--date", "2023-10-31")
    assert "Partial cost: R$ 111,00" in result.output


def test_dashboard_bad_date(with_readings):
    result = with_readings("dashboard", "--date", "31/10/2023")
    assert result.exit_code == 1


def test_project(with_readings):
    result = with_readings("project", "--date", "2023-10-31")
    assert "Projected cost: R$ 227,57" in result.output


def test_project_not_enough_data(invoke):
    invoke("reading", "add", "10500", "--date", "2023-10-01")
    result = invoke("project", "--date", "2023-10-31")
    assert "Not enough data" in result.output

    assert json.loads(invoke("project", "--json").output) is None


def test_tariff_set_secondary_flag(invoke):
    result = invoke("tariff", "set", "--flag-rate", "0", "--secondary", "--secondary-rate", "0.02")
    assert result.exit_code == 0

    data = json.loads(invoke("cost", "100", "--json").output)
    assert data["flag"] == 2.0
    assert data["total"] == 97.0


def test_tariff_set_percentage_lighting(invoke):
    invoke("tariff", "set", "--lighting-mode", "percentage", "--lighting-amount", "10")
    data = json.loads(invoke("cost", "100", "--json").output)
    assert data["public_lighting"] == 8.0
    assert data["total"] == 88.0


def test_tariff_set_rejects_negative_rate(invoke):
    result = invoke("tariff", "set", "--tusd", "-1")
    assert result.exit_code == 1
    assert "tusd.rate_per_unit" in result.output

    data = json.loads(invoke("tariff", "show", "--json").output)
    assert data["tusd"]["rate_per_unit"] == 0.45


def test_tariff_load_and_reset(invoke, tmp_path):
    config = tmp_path / "tariffs.yaml"
    config.write_text(
        "tusd: {rate_per_unit: 0.5}\n"
        "te: {rate_per_unit: 0.4}\n"
        "flag_surcharge: {label: Vermelha, rate_per_unit: 0.04}\n"
        "public_lighting: 10\n"
    )
    result = invoke("tariff", "load", "--config", str(config))
    assert result.exit_code == 0

    data = json.loads(invoke("tariff", "show", "--json").output)
    assert data["public_lighting"] == {"mode": "fixed", "amount": 10.0}

    invoke("tariff", "reset")
    data = json.loads(invoke("tariff", "show", "--json").output)
    assert data["tusd"]["rate_per_unit"] == 0.45


@pytest.mark.parametrize(
    "content",
    [
        "tusd: [unclosed\n",
        "tusd: {rate_per_unit: abc}\n"
        "te: {rate_per_unit: 0.4}\n"
        "flag_surcharge: {label: Verde, rate_per_unit: 0}\n"
        "public_lighting: {mode: fixed, amount: 5}\n",
    ],
)
def test_tariff_load_reports_bad_file(invoke, tmp_path, content):
    config = tmp_path / "tariffs.yaml"
    config.write_text(content)

    result = invoke("tariff", "load", "--config", str(config))
    assert result.exit_code == 1
    assert "Error" in result.output
    assert isinstance(result.exception, SystemExit)


def test_database_init_reports_bad_yaml(invoke, tmp_path, monkeypatch):
    config = tmp_path / "tariffs.yaml"
    config.write_text("tusd: [unclosed\n")
    monkeypatch.setenv("METER_TARIFFS_PATH", str(config))

    result = invoke("database", "init")
    assert result.exit_code == 1
    assert "Error" in result.output


def test_tariff_show_table(invoke):
    result = invoke("tariff", "show")
    assert result.exit_code == 0
    assert "TUSD" in result.output
    assert "Verde" in result.output


def test_cost_table(invoke):
    result = invoke("cost", "120")
    assert result.exit_code == 0
    assert "R$ 111,00" in result.output
