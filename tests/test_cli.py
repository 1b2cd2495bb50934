"""Tests for cli.py"""

import json

import pytest

from seller_settlement import cli


def _run(argv):
    with pytest.raises(SystemExit) as exc:
        cli.main(argv)
    return exc.value.code


@pytest.fixture(autouse=True)
def _isolated_cwd(tmp_path, monkeypatch):
    # keep a stray config.yaml in the working directory from being picked up
    monkeypatch.chdir(tmp_path)


def test_calc_json(capsys):
    code = _run(["calc", "--price", "1000", "--dims", "20x15x10", "--commission", "15", "--json"])
    assert code == 0
    data = json.loads(capsys.readouterr().out)
    assert data["profit"]["amount"] == pytest.approx(286.01)
    assert data["marketplace_expenses"]["total"] == pytest.approx(270.2)


def test_calc_table(capsys):
    code = _run(["calc", "--price", "650", "--channel", "FBS", "--volume", "0.9"])
    assert code == 0
    out = capsys.readouterr().out
    assert "FBS" in out
    assert "Profit" in out


def test_calc_rejects_zero_price(capsys):
    assert _run(["calc", "--price", "0"]) == 2
    assert "[ERROR]" in capsys.readouterr().err


def test_calc_rejects_bad_dims(capsys):
    assert _run(["calc", "--price", "100", "--dims", "20x15"]) == 2


def test_calc_missing_config_file(capsys):
    assert _run(["calc", "--price", "100", "--config", "missing.yaml"]) == 2


def test_batch_sample(tmp_path, capsys):
    reports = tmp_path / "reports"
    code = _run(["batch", "--sample", "--reports-dir", str(reports), "--workers", "2"])
    assert code == 0
    files = sorted(p.suffix for p in reports.iterdir())
    assert files == [".json", ".md"]
    data = json.loads(next(reports.glob("*.json")).read_text(encoding="utf-8"))
    assert data["summary"]["sales_count"] == 6
    assert len(data["settlements"]) == 6
    assert "Seller Settlement" in capsys.readouterr().out


def test_batch_requires_input(capsys):
    assert _run(["batch"]) == 2


def test_batch_missing_file(tmp_path, capsys):
    assert _run(["batch", "--sales", str(tmp_path / "none.csv")]) == 2


def test_warehouses_without_token(monkeypatch, capsys):
    monkeypatch.delenv("WB_API_TOKEN", raising=False)
    assert _run(["warehouses"]) == 2


def test_warehouses_lists_coefficients(monkeypatch, capsys):
    payload = {"warehouseList": [{"warehouseName": "Коледино", "boxDeliveryCoefExpr": "160"}]}
    monkeypatch.setenv("WB_API_TOKEN", "tok")
    monkeypatch.setattr("seller_settlement.warehouses.fetch_box_tariffs", lambda *a, **k: payload)
    assert _run(["warehouses"]) == 0
    assert "KTR 1.60" in capsys.readouterr().out


def test_no_command_prints_help(capsys):
    assert _run([]) == 0


def test_batch_settles_each_sale_once(tmp_path, monkeypatch, capsys):
    from seller_settlement import aggregate, settlement

    calls = []
    real = settlement.compose_settlement

    def counting(*args, **kwargs):
        calls.append(args[0].product_id)
        return real(*args, **kwargs)

    monkeypatch.setattr(aggregate, "compose_settlement", counting)
    monkeypatch.setattr(settlement, "compose_settlement", counting)
    code = _run(["batch", "--sample", "--reports-dir", str(tmp_path / "reports"), "--workers", "3"])
    assert code == 0
    assert len(calls) == 6
