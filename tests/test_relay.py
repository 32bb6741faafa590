import pytest

import les_relay
import namelist_n_constants as nl
from les_errors import ConfigurationError


def fail_if_called(*args, **kwargs):
    raise AssertionError("expensive stage reached before the configuration check")


def test_default_namelist_is_consistent():
    nt = int(round(nl.tsim / nl.dt))
    assert les_relay.check_config() == nt // nl.savefreq + 1


@pytest.mark.parametrize("name, value", [("tsave", [99999]), ("tsave", [0, 5]), ("post_nunroll", 99999),
                                         ("post_nunroll_valid", 0), ("smag_nunroll", 99999),
                                         ("savefreq", 33), ("method", "ab2"), ("project_orders", ["middle"]),
                                         ("nvalid", 2)])
def test_bad_namelist_fails_before_any_work(monkeypatch, tmp_path, name, value):
    monkeypatch.setattr(nl, name, value)
    monkeypatch.setattr(nl, "outdir", str(tmp_path / "out"))
    monkeypatch.setattr(les_relay, "get_setups", fail_if_called)
    monkeypatch.setattr(les_relay, "create_data", fail_if_called)
    with pytest.raises(ConfigurationError):
        les_relay.main()
    assert not (tmp_path / "out").exists()
