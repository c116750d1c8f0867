"""Tests for CSV snapshot sync (diff-and-append reconciliation)."""

from __future__ import annotations

import logging
import threading
import time

import pytest

from atlas.config.schema import SyncConfig
from atlas.data.snapshot_sync import (
    ColumnRule,
    parse_number,
    resolve_columns,
    sync_holdings_csv,
)
from atlas.errors import ColumnResolutionError, ReferenceNotFound, TargetAccountNotFound
from atlas.portfolio.ledger import ManualTransactionInput
from atlas.portfolio.models import Account, TransactionType

TODAY = "2024-03-21"


def _qty(ledger, account_id, ticker):
    sec = ledger.find_security_by_ticker(ticker)
    if sec is None:
        return 0.0
    for pos in ledger.positions([account_id]):
        if pos.security_id == sec.id:
            return pos.quantity
    return 0.0


@pytest.fixture
def aapl_ledger(ledger):
    """Ledger with 100 AAPL @ 180 in acc_1."""
    ledger.add_manual_transaction(ManualTransactionInput(
        ticker="AAPL", account_id="acc_1", quantity=100, price=180.0, date="2024-01-05",
    ))
    return ledger


class TestColumnResolution:

    def test_synonyms_without_mapping(self):
        account = Account(id="a", org_id="o", name="A")
        cols = resolve_columns(["Symbol", "Shares", "Avg Cost"], account, SyncConfig())
        assert (cols.ticker, cols.quantity, cols.cost) == (0, 1, 2)

    def test_match_is_case_insensitive_and_exact(self):
        account = Account(id="a", org_id="o", name="A")
        cols = resolve_columns(["  QTY ", "TICKER", "Ticker Name"], account, SyncConfig())
        assert (cols.ticker, cols.quantity, cols.cost) == (1, 0, None)

    def test_first_matching_header_wins(self):
        rule = ColumnRule("ticker", ("ticker", "symbol"))
        assert rule.match(["Symbol", "Ticker"]) == 0

    def test_chinese_synonyms(self):
        account = Account(id="a", org_id="o", name="A")
        cols = resolve_columns(["证券代码", "持仓", "均价"], account, SyncConfig())
        assert (cols.ticker, cols.quantity, cols.cost) == (0, 1, 2)

    def test_mapping_replaces_synonyms(self, seeded_ledger):
        account = seeded_ledger.get_account("acc_1")
        with pytest.raises(ColumnResolutionError) as exc:
            resolve_columns(["Ticker", "Quantity"], account, SyncConfig())
        assert exc.value.missing == ["ticker", "quantity"]
        assert exc.value.searched["source"] == "account mapping"
        assert exc.value.searched["ticker"] == ["Symbol"]

    def test_missing_cost_column_is_fine(self):
        account = Account(id="a", org_id="o", name="A")
        cols = resolve_columns(["ticker", "qty"], account, SyncConfig())
        assert cols.cost is None

    def test_error_message_lists_headers(self):
        account = Account(id="a", org_id="o", name="A")
        with pytest.raises(ColumnResolutionError) as exc:
            resolve_columns(["Name", "Qty"], account, SyncConfig())
        assert exc.value.missing == ["ticker"]
        assert exc.value.headers == ["Name", "Qty"]
        assert str(exc.value).startswith("CSV format error: could not find ticker column")


class TestParseNumber:

    def test_values(self):
        assert parse_number("12.5") == 12.5
        assert parse_number("-3") == -3.0
        assert parse_number("abc") is None
        assert parse_number(None) is None
        assert parse_number("nan") is None
        assert parse_number("inf") is None


class TestSyncScenario:

    def test_increase_appends_one_adjust(self, aapl_ledger):
        result = sync_holdings_csv(
            aapl_ledger, "org_1", "Ticker,Quantity\nAAPL,120\n", "acc_1", today=TODAY,
        )
        assert len(result.adjustments) == 1
        tx = result.adjustments[0]
        assert tx.type is TransactionType.ADJUST
        assert tx.quantity == pytest.approx(20.0)
        assert tx.price == pytest.approx(180.0)
        assert tx.date == TODAY
        assert tx.note == "CSV snapshot sync: diff 20"
        assert _qty(aapl_ledger, "acc_1", "AAPL") == pytest.approx(120.0)

    def test_second_run_is_a_no_op(self, aapl_ledger):
        csv = "Ticker,Quantity\nAAPL,120\n"
        sync_holdings_csv(aapl_ledger, "org_1", csv, "acc_1", today=TODAY)
        before = len(aapl_ledger.transactions())
        again = sync_holdings_csv(aapl_ledger, "org_1", csv, "acc_1", today=TODAY)
        assert again.adjustments == []
        assert again.rows_unchanged == 1
        assert len(aapl_ledger.transactions()) == before

    def test_decrease_keeps_average_cost(self, aapl_ledger):
        result = sync_holdings_csv(
            aapl_ledger, "org_1", "ticker,qty,cost\nAAPL,60,999\n", "acc_1", today=TODAY,
        )
        assert result.adjustments[0].quantity == pytest.approx(-40.0)
        pos = aapl_ledger.positions(["acc_1"])[0]
        assert pos.quantity == pytest.approx(60.0)
        assert pos.cost_basis == pytest.approx(180.0)

    def test_csv_cost_used_when_present(self, aapl_ledger):
        result = sync_holdings_csv(
            aapl_ledger, "org_1", "Ticker,Quantity,Cost Basis\nAAPL,110,200\n", "acc_1",
        )
        assert result.adjustments[0].price == pytest.approx(200.0)

    def test_unparseable_cost_falls_back_to_average(self, aapl_ledger):
        result = sync_holdings_csv(
            aapl_ledger, "org_1", "Ticker,Quantity,Cost\nAAPL,110,n/a\n", "acc_1",
        )
        assert result.adjustments[0].price == pytest.approx(180.0)

    def test_new_ticker_creates_security(self, aapl_ledger):
        result = sync_holdings_csv(
            aapl_ledger, "org_1", "Symbol,Shares\nTSLA,5\n", "acc_1", today=TODAY,
        )
        assert result.securities_created == ["TSLA"]
        tx = result.adjustments[0]
        assert tx.quantity == 5
        assert tx.price == 0.0
        sec = aapl_ledger.find_security_by_ticker("TSLA")
        assert sec.current_price == 100.0
        assert sec.currency == "USD"
        assert (sec.sector, sec.industry, sec.country) == ("Other", "Unknown", "Global")

    def test_ticker_is_uppercased(self, aapl_ledger):
        result = sync_holdings_csv(aapl_ledger, "org_1", "ticker,qty\naapl,100\n", "acc_1")
        assert result.adjustments == []
        assert result.securities_created == []

    def test_absent_tickers_are_untouched(self, aapl_ledger):
        sync_holdings_csv(aapl_ledger, "org_1", "ticker,qty\nMSFT,3\n", "acc_1")
        assert _qty(aapl_ledger, "acc_1", "AAPL") == pytest.approx(100.0)

    def test_zero_quantity_closes_position(self, aapl_ledger):
        sync_holdings_csv(aapl_ledger, "org_1", "ticker,qty\nAAPL,0\n", "acc_1")
        assert aapl_ledger.positions(["acc_1"]) == []

    def test_header_bom_is_ignored(self, aapl_ledger):
        result = sync_holdings_csv(
            aapl_ledger, "org_1", "\ufeffTicker,Quantity\nAAPL,101\n", "acc_1",
        )
        assert len(result.adjustments) == 1


class TestSyncSeeded:

    def test_account_mapping(self, seeded_ledger):
        csv = "Symbol,Position,AvgPrice\nNVDA,160,900\nMSFT,50,380\nSPY,200,480\n"
        result = sync_holdings_csv(seeded_ledger, "org_1", csv, "acc_1", today=TODAY)
        assert [t.quantity for t in result.adjustments] == [pytest.approx(10.0)]
        assert result.adjustments[0].price == pytest.approx(900.0)
        assert result.rows_unchanged == 2

    def test_only_target_account_is_baseline(self, seeded_ledger):
        # acc_2 also holds NVDA; it must not count toward acc_1
        csv = "Symbol,Position\nNVDA,150\n"
        result = sync_holdings_csv(seeded_ledger, "org_1", csv, "acc_1")
        assert result.adjustments == []
        assert _qty(seeded_ledger, "acc_2", "NVDA") == pytest.approx(20.0)

    def test_jpy_account_with_chinese_headers(self, seeded_ledger):
        csv = "代码,数量,成本\n7203.T,1200,3000\n6758.T,10,\n"
        result = sync_holdings_csv(seeded_ledger, "org_2", csv, "acc_3", today=TODAY)
        assert [t.quantity for t in result.adjustments] == [pytest.approx(200.0), pytest.approx(10.0)]
        assert seeded_ledger.find_security_by_ticker("6758.T").currency == "JPY"

    def test_ledger_only_grows(self, seeded_ledger):
        before = seeded_ledger.transactions()
        csv = "Ticker,Qty,Cost Basis\nUSD.CASH,1000,1\nNVDA,0,\nAMZN,4,170\n"
        sync_holdings_csv(seeded_ledger, "org_1", csv, "acc_2", today=TODAY)
        after = seeded_ledger.transactions()
        assert after[:len(before)] == before
        assert len(after) == len(before) + 3

    def test_full_snapshot_round(self, seeded_ledger):
        csv = "Ticker,Qty\nUSD.CASH,1000\nNVDA,25\n"
        sync_holdings_csv(seeded_ledger, "org_1", csv, "acc_2")
        assert _qty(seeded_ledger, "acc_2", "USD.CASH") == pytest.approx(1000.0)
        assert _qty(seeded_ledger, "acc_2", "NVDA") == pytest.approx(25.0)
        assert sync_holdings_csv(seeded_ledger, "org_1", csv, "acc_2").adjustments == []


class TestRowSkips:

    def test_bad_rows_are_skipped(self, aapl_ledger):
        csv = "Ticker,Quantity\nAAPL,abc\n,5\nMSFT,\nGOOG,10\n"
        result = sync_holdings_csv(aapl_ledger, "org_1", csv, "acc_1")
        assert result.rows_skipped == 3
        assert result.rows_processed == 1
        assert [aapl_ledger.get_security(t.security_id).ticker for t in result.adjustments] == ["GOOG"]
        assert aapl_ledger.find_security_by_ticker("MSFT") is None

    def test_header_only(self, aapl_ledger):
        result = sync_holdings_csv(aapl_ledger, "org_1", "Ticker,Quantity\n", "acc_1")
        assert result.adjustments == []
        assert result.rows_processed == 0

    def test_empty_text(self, aapl_ledger):
        result = sync_holdings_csv(aapl_ledger, "org_1", "  \n", "acc_1")
        assert result.adjustments == []
        assert result.columns is None

    def test_duplicate_rows_diff_against_same_baseline(self, aapl_ledger):
        # The baseline is fixed before rows are applied, so a repeated
        # ticker adjusts twice.
        csv = "Ticker,Quantity\nAAPL,120\nAAPL,120\n"
        result = sync_holdings_csv(aapl_ledger, "org_1", csv, "acc_1")
        assert len(result.adjustments) == 2
        assert _qty(aapl_ledger, "acc_1", "AAPL") == pytest.approx(140.0)

    def test_trailing_commas_keep_the_row(self, aapl_ledger):
        csv = "ticker,quantity\nAAPL,120,\nMSFT,10,\n"
        result = sync_holdings_csv(aapl_ledger, "org_1", csv, "acc_1")
        assert result.rows_processed == 2
        assert result.rows_skipped == 0
        assert [t.quantity for t in result.adjustments] == [pytest.approx(20.0), pytest.approx(10.0)]

    def test_extra_fields_are_ignored(self, aapl_ledger):
        result = sync_holdings_csv(
            aapl_ledger, "org_1", "ticker,quantity\nAAPL,120,150.0\n", "acc_1",
        )
        assert len(result.adjustments) == 1
        # No cost column in the header, so the ledger average is used
        assert result.adjustments[0].price == pytest.approx(180.0)
        assert _qty(aapl_ledger, "acc_1", "AAPL") == pytest.approx(120.0)

    def test_blank_lines_are_not_rows(self, aapl_ledger):
        csv = "\nTicker,Quantity\n\nAAPL,120\n\nMSFT,3\n"
        result = sync_holdings_csv(aapl_ledger, "org_1", csv, "acc_1")
        assert result.rows_processed == 2
        assert result.rows_skipped == 0
        assert len(result.adjustments) == 2

    def test_skip_log_names_source_line(self, aapl_ledger, caplog):
        caplog.set_level(logging.DEBUG, logger="atlas.data.snapshot_sync")
        csv = "\nTicker,Quantity\n\nAAPL,120,x\nMSFT,lots\n"
        result = sync_holdings_csv(aapl_ledger, "org_1", csv, "acc_1")
        assert result.rows_skipped == 1
        assert "Skipping snapshot line 5: quantity 'lots' is not numeric" in caplog.text


class TestSyncFailures:

    def test_unknown_account(self, aapl_ledger):
        before = len(aapl_ledger.transactions())
        with pytest.raises(TargetAccountNotFound) as exc:
            sync_holdings_csv(aapl_ledger, "org_1", "Ticker,Quantity\nAAPL,1\n", "acc_x")
        assert isinstance(exc.value, ReferenceNotFound)
        assert exc.value.ref_id == "acc_x"
        assert len(aapl_ledger.transactions()) == before

    def test_account_of_other_org(self, seeded_ledger):
        with pytest.raises(TargetAccountNotFound):
            sync_holdings_csv(seeded_ledger, "org_1", "代码,数量\n7203.T,1\n", "acc_3")

    def test_unknown_account_with_empty_text(self, ledger):
        with pytest.raises(TargetAccountNotFound):
            sync_holdings_csv(ledger, "org_1", "", "acc_x")

    def test_missing_columns_write_nothing(self, aapl_ledger):
        before = aapl_ledger.transactions()
        with pytest.raises(ColumnResolutionError):
            sync_holdings_csv(aapl_ledger, "org_1", "Name,Amount\nTSLA,1\n", "acc_1")
        assert aapl_ledger.transactions() == before
        assert aapl_ledger.find_security_by_ticker("TSLA") is None

    def test_later_failure_keeps_earlier_adjustments(self, aapl_ledger, monkeypatch):
        """Adjustments commit per row and are not rolled back."""
        real_append = aapl_ledger.append
        calls = []

        def flaky_append(tx):
            calls.append(tx)
            if len(calls) == 2:
                raise RuntimeError("disk full")
            return real_append(tx)

        monkeypatch.setattr(aapl_ledger, "append", flaky_append)
        csv = "Ticker,Quantity\nAAPL,120\nTSLA,5\n"
        with pytest.raises(RuntimeError):
            sync_holdings_csv(aapl_ledger, "org_1", csv, "acc_1")

        monkeypatch.undo()
        assert _qty(aapl_ledger, "acc_1", "AAPL") == pytest.approx(120.0)
        assert _qty(aapl_ledger, "acc_1", "TSLA") == 0.0


class TestConcurrentSync:

    def test_same_snapshot_twice_adjusts_once(self, aapl_ledger):
        csv = "Ticker,Quantity\nAAPL,150\n"
        barrier = threading.Barrier(2)
        results = []

        def run():
            barrier.wait()
            results.append(sync_holdings_csv(aapl_ledger, "org_1", csv, "acc_1"))

        threads = [threading.Thread(target=run) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sum(len(r.adjustments) for r in results) == 1
        assert _qty(aapl_ledger, "acc_1", "AAPL") == pytest.approx(150.0)

    def test_new_ticker_from_two_orgs_is_created_once(self, ledger, monkeypatch):
        ledger.add_organization("org_2", "Personal")
        ledger.add_account("acc_2", "org_2", "Other")
        real_find = ledger.find_security_by_ticker

        def slow_find(ticker):
            found = real_find(ticker)
            time.sleep(0.05)
            return found

        monkeypatch.setattr(ledger, "find_security_by_ticker", slow_find)
        barrier = threading.Barrier(2)
        results, errors = [], []

        def run(org_id, account_id):
            barrier.wait()
            try:
                results.append(sync_holdings_csv(
                    ledger, org_id, "Ticker,Quantity\nRIVN,5\n", account_id,
                ))
            except Exception as e:
                errors.append(e)

        threads = [
            threading.Thread(target=run, args=("org_1", "acc_1")),
            threading.Thread(target=run, args=("org_2", "acc_2")),
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert sorted(len(r.securities_created) for r in results) == [0, 1]
        assert len({r.adjustments[0].security_id for r in results}) == 1
