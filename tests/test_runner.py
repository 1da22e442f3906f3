"""Per-wallet loop, batch orchestration and summary tests."""

import random

import pytest

from roundtrip_bot.config import RunConfig
from roundtrip_bot.runner import BatchOrchestrator, BatchResult, WalletRunner, report_batch, summary_table
from roundtrip_bot.wallet import SwapSessionResult

from conftest import KEY_A, KEY_B, KEY_C, FakeWallet


def make_runner(wallet, swap_config, run_config, pricer, estimator, logger, fake_sleep, seed=1):
    return WalletRunner(
        wallet, swap_config, run_config, pricer, estimator,
        logger=logger, sleep=fake_sleep, rng=random.Random(seed),
    )


class TestWalletRunner:
    def test_every_attempt_is_counted(self, wallet, swap_config, run_config, pricer, estimator, logger, fake_sleep):
        """Test each cycle is counted once."""
        result = make_runner(wallet, swap_config, run_config, pricer, estimator, logger, fake_sleep).run()
        assert result.success_count == 3
        assert result.fail_count == 0
        assert len(wallet.sent) == 3

    def test_pauses_only_between_cycles(self, wallet, swap_config, run_config, pricer, estimator, logger, sleeps, fake_sleep):
        """Test no pause follows the last cycle."""
        make_runner(wallet, swap_config, run_config, pricer, estimator, logger, fake_sleep).run()
        assert len(sleeps) == 2
        assert all(5.0 <= s < 15.0 for s in sleeps)

    def test_delay_range(self, wallet, swap_config, run_config, pricer, estimator, logger, fake_sleep):
        """Test random pauses stay inside the window."""
        runner = make_runner(wallet, swap_config, run_config, pricer, estimator, logger, fake_sleep)
        delays = [runner.random_delay_ms() for _ in range(200)]
        assert min(delays) >= 5000
        assert max(delays) < 15000

    def test_zero_swaps(self, wallet, swap_config, pricer, estimator, logger, sleeps, fake_sleep):
        """Test a wallet with no swaps sends nothing."""
        run_config = RunConfig(number_of_swaps=0)
        result = make_runner(wallet, swap_config, run_config, pricer, estimator, logger, fake_sleep).run()
        assert result.attempts == 0
        assert wallet.sent == []
        assert sleeps == []

    def test_failure_does_not_stop_the_loop(self, wallet, swap_config, run_config, pricer, estimator, logger, fake_sleep):
        """Test a failed cycle is counted and the loop continues."""
        wallet.broadcast_failures[1] = "insufficient funds for gas * price + value; have 0"
        result = make_runner(wallet, swap_config, run_config, pricer, estimator, logger, fake_sleep).run()
        assert result.fail_count == 1
        assert result.success_count == 2

    def test_reverted_single_swap_counts_as_failure(self, wallet, swap_config, run_config, pricer, estimator, logger, fake_sleep):
        """Test a reverted swap is a failed cycle."""
        wallet.failed_receipts.add(2)
        result = make_runner(wallet, swap_config, run_config, pricer, estimator, logger, fake_sleep).run()
        assert (result.success_count, result.fail_count) == (2, 1)

    def test_sequential_mode(self, wallet, swap_config, pricer, estimator, logger, sleeps, fake_sleep):
        """Test sequential cycles run the full round trip."""
        run_config = RunConfig(number_of_swaps=2, sequential_swap=True)
        result = make_runner(wallet, swap_config, run_config, pricer, estimator, logger, fake_sleep).run()
        assert result.success_count == 2
        assert len(wallet.sent) == 10
        # five step cool-downs per cycle plus one pause between cycles
        assert len(sleeps) == 11

    def test_sequential_failure_reports_stranded_tokens(self, swap_config, pricer, estimator, logger, console_output, fake_sleep):
        """Test a partial sequence warns about tokens left behind."""
        wallet = FakeWallet(config=swap_config, logger=logger, swap_out_yield=0)
        run_config = RunConfig(number_of_swaps=1, sequential_swap=True)
        result = make_runner(wallet, swap_config, run_config, pricer, estimator, logger, fake_sleep).run()
        assert result.fail_count == 1
        assert "left mid-sequence" in console_output.getvalue()

    def test_default_amount(self, wallet, swap_config, pricer, estimator, logger, fake_sleep):
        """Test the default amount is swapped when none is configured."""
        run_config = RunConfig(number_of_swaps=1)
        make_runner(wallet, swap_config, run_config, pricer, estimator, logger, fake_sleep).run()
        assert wallet.sent[0].value == swap_config.default_amount_wei


class TestBatchOrchestrator:
    @pytest.fixture
    def wallets(self):
        return {}

    @pytest.fixture
    def orchestrator(self, swap_config, run_config, mock_web3, logger, pricer, estimator, fake_sleep, wallets):
        def factory(key, index):
            wallet = FakeWallet(key, config=swap_config, logger=logger, index=index)
            if key == KEY_B:
                wallet.eth = 0
            wallets[key] = wallet
            return wallet

        return BatchOrchestrator(
            [KEY_A, KEY_B, KEY_C], swap_config, run_config,
            web3=mock_web3, logger=logger, pricer=pricer, estimator=estimator,
            wallet_factory=factory, sleep=fake_sleep, rng=random.Random(3),
        )

    def test_wallets_processed_in_order(self, orchestrator, wallets):
        """Test wallets run in key file order."""
        result = orchestrator.run()
        assert [s.address for s in result.sessions] == [
            wallets[KEY_A].address, wallets[KEY_B].address, wallets[KEY_C].address
        ]

    def test_failing_wallet_does_not_stop_batch(self, orchestrator):
        """Test an underfunded wallet does not stop the others."""
        result = orchestrator.run()
        assert [(s.success_count, s.fail_count) for s in result.sessions] == [(3, 0), (0, 3), (3, 0)]
        assert result.total_success == 6
        assert result.total_fail == 3
        assert result.success_rate == pytest.approx(66.666, rel=1e-3)

    def test_default_wallets_share_connection(self, swap_config, run_config, mock_web3, logger):
        """Test default components share one connection."""
        orchestrator = BatchOrchestrator([KEY_A], swap_config, run_config, web3=mock_web3, logger=logger)
        wallet = orchestrator.wallet_factory(KEY_A, 0)
        assert wallet.web3 is mock_web3
        assert orchestrator.pricer.web3 is mock_web3


class TestBatchResult:
    def test_empty_batch_rate_is_zero(self):
        """Test success rate with no attempts."""
        assert BatchResult().success_rate == 0.0

    def test_totals(self):
        """Test batch totals and rounding."""
        result = BatchResult((
            SwapSessionResult("0xA", 2, 1),
            SwapSessionResult("0xB", 0, 0),
        ))
        assert result.total_attempts == 3
        assert result.to_dict()['success_rate'] == 66.67

    def test_summary_table_rate_column(self):
        """Test the summary table shows rates in their own column."""
        result = BatchResult((
            SwapSessionResult("0xA", 2, 1),
            SwapSessionResult("0xB", 0, 0),
        ))
        table = summary_table(result)
        assert [c.header for c in table.columns] == [
            "Wallet", "Address", "Successful", "Failed", "Success %"
        ]
        assert list(table.columns[4].cells) == ["66.67%", "0.00%", "66.67%"]
        assert list(table.columns[1].cells)[-1] == ""

    def test_report(self, logger, console_output):
        """Test the printed batch report."""
        result = BatchResult((SwapSessionResult("0x" + "ab" * 20, 1, 1),))
        report_batch(result, logger)
        output = console_output.getvalue()
        assert "TOTAL RESULTS" in output
        assert "Success Rate: 50.00%" in output
        assert "Execution Summary" in output
