import pytest

from redrive.facade.sqs import SQS
from redrive.log import RunLog
from redrive.requeue import RunStats, REASON_BUDGET, REASON_DRAINED, REASON_IDLE, REASON_SHUTDOWN
from redrive.requeue.config import RunConfig
from redrive.requeue.runner import RequeueRun, TERMINATED
from tests.stubs.print_stub import PrintStub
from tests.stubs.shutdown_stub import ShutdownStub, FakeClock
from tests.stubs.sqs_client_stub import SQSClientStub, client_error


class TestCase:

    @pytest.fixture
    def client(self):
        return SQSClientStub()

    @pytest.fixture
    def clock(self):
        return FakeClock()

    @pytest.fixture
    def printer(self):
        return PrintStub()

    @pytest.fixture
    def shutdown(self, clock, printer):
        return ShutdownStub(clock, log=printer.print)

    @pytest.fixture
    def make_run(self, client, clock, printer, shutdown):
        def make_run(**kwargs):
            options = {
                'source_queue': 'dlq', 'destination_queue': 'queue', 'wait_seconds': 0, 'idle_timeout': 3,
                'run_id': 'run-1', **kwargs
            }
            return RequeueRun(
                config=RunConfig.from_options(options), sqs=SQS(sqs_client=client), shutdown=shutdown,
                log=RunLog('run-1', print=printer.print), clock=clock, sleep=shutdown.sleep
            )
        return make_run

    @staticmethod
    def fill(client, count, queue='dlq'):
        return [client.add_message(queue, f'body-{index}') for index in range(count)]

    def test_all_sent_and_deleted(self, client, make_run, printer):
        self.fill(client, 3)
        result = make_run(batch_size=10, budget=3).run()
        assert result.stats == RunStats(received=3, sent=3, failed=0, batches_processed=1, deleted=3)
        assert result.reason == REASON_BUDGET
        assert len(client.delete_calls) == 1
        assert len(client.delete_calls[0]['Entries']) == 3
        assert client.messages('dlq') == []
        assert sorted(m['Body'] for m in client.messages('queue')) == ['body-0', 'body-1', 'body-2']
        assert printer.count('Total statistics:') == 1

    def test_send_failure_keeps_message(self, client, make_run):
        self.fill(client, 2)
        client.failing_bodies.add('body-1')
        result = make_run().run()
        assert result.stats.received == 2
        assert result.stats.sent == 1
        assert result.stats.failed == 1
        assert result.stats.deleted == 1
        assert len(client.deleted_receipts()) == 1
        assert [m['Body'] for m in client.messages('dlq')] == ['body-1']
        assert [m['Body'] for m in client.messages('queue')] == ['body-0']

    def test_keep_in_source(self, client, make_run):
        self.fill(client, 4)
        result = make_run(delete_after_send=False).run()
        assert result.stats.sent == 4
        assert client.delete_calls == []
        assert len(client.messages('dlq')) == 4

    def test_budget_limits_requests(self, client, make_run):
        self.fill(client, 20)
        result = make_run(batch_size=10, budget=5).run()
        assert result.reason == REASON_BUDGET
        assert result.stats.sent == 5
        assert result.stats.received == 5
        assert [call['MaxNumberOfMessages'] for call in client.receive_calls] == [5]
        assert len(client.messages('dlq')) == 15

    def test_budget_with_failures_requests_remainder(self, client, make_run):
        self.fill(client, 8)
        client.failing_bodies.add('body-1')
        result = make_run(batch_size=4, budget=5).run()
        assert [call['MaxNumberOfMessages'] for call in client.receive_calls] == [4, 2]
        assert result.stats == RunStats(received=6, sent=5, failed=1, batches_processed=2, deleted=5)
        assert result.reason == REASON_BUDGET

    def test_empty_source_with_budget_terminates(self, client, make_run, shutdown):
        self.fill(client, 2)
        result = make_run(budget=5).run()
        assert result.reason == REASON_DRAINED
        assert result.stats.sent == 2
        assert len(client.receive_calls) == 2
        assert shutdown.pauses == []

    def test_empty_source_without_budget_polls_again(self, client, make_run, shutdown):
        original = client.receive_message
        polls = []

        def receive_message(**kwargs):
            polls.append(kwargs)
            if len(polls) == 3:
                self.fill(client, 2)
            return original(**kwargs)

        client.receive_message = receive_message
        shutdown.request_after_pauses = 3
        result = make_run(idle_timeout=0).run()
        assert result.reason == REASON_SHUTDOWN
        assert len(polls) == 4
        assert shutdown.pauses == [1, 1, 1]
        assert result.stats == RunStats(received=2, sent=2, failed=0, batches_processed=1, deleted=2)

    def test_idle_timeout_without_budget(self, client, make_run, shutdown, printer):
        self.fill(client, 1)
        result = make_run(idle_timeout=3).run()
        assert result.reason == REASON_IDLE
        assert result.stats.sent == 1
        assert len(client.receive_calls) == 5
        assert shutdown.pauses == [1, 1, 1]
        printer.assert_has_line('No messages received for 3 seconds, giving up')

    def test_single_empty_poll_does_not_terminate(self, client, make_run, shutdown):
        run = make_run(idle_timeout=3)
        shutdown.request_after_pauses = 1
        result = run.run()
        assert len(client.receive_calls) == 1
        assert result.reason == REASON_SHUTDOWN
        assert run.state == TERMINATED

    def test_receive_error_pauses_and_retries(self, client, make_run, shutdown, printer):
        self.fill(client, 2)
        client.receive_errors.append(client_error('ReceiveMessage', code='Throttling', message='Slow down'))
        result = make_run(budget=2, retry_pause=5).run()
        assert result.reason == REASON_BUDGET
        assert result.stats.sent == 2
        assert shutdown.pauses == [5]
        printer.assert_has_line('[ERROR] [run-1] SQS service error: ReceiveMessage on dlq failed: Throttling: Slow down')

    def test_partial_delete_failure_continues(self, client, make_run, printer):
        self.fill(client, 5)
        original = client.receive_message

        def receive_message(**kwargs):
            response = original(**kwargs)
            for message in response.get('Messages', []):
                if message['Body'] == 'body-1':
                    client.failing_receipts.add(message['ReceiptHandle'])
            return response

        client.receive_message = receive_message
        result = make_run(batch_size=3, budget=5).run()
        assert result.reason == REASON_BUDGET
        assert result.stats == RunStats(received=5, sent=5, failed=0, batches_processed=2, deleted=4,
                                        delete_failed=1)
        assert len(client.deleted_receipts()) == 5
        assert [m['Body'] for m in client.messages('dlq')] == ['body-1']
        printer.assert_has_line('[WARN] [run-1] Some messages failed to delete')

    def test_shutdown_finishes_current_batch(self, client, make_run, shutdown):
        self.fill(client, 6)
        original = client.send_message

        def send_message(**kwargs):
            shutdown.request('SIGINT')
            return original(**kwargs)

        client.send_message = send_message
        result = make_run(batch_size=3, max_workers=1).run()
        assert result.reason == REASON_SHUTDOWN
        assert result.stats == RunStats(received=3, sent=3, failed=0, batches_processed=1, deleted=3)
        assert len(client.receive_calls) == 1
        assert len(client.messages('dlq')) == 3

    def test_unexpected_error_skips_batch(self, client, make_run, shutdown, printer):
        self.fill(client, 2)
        original = client.send_message
        calls = []

        def send_message(**kwargs):
            calls.append(kwargs)
            if len(calls) == 1:
                raise RuntimeError('bug')
            return original(**kwargs)

        client.send_message = send_message
        result = make_run(max_workers=1, idle_timeout=2, retry_pause=1).run()
        assert result.stats.received == 0
        assert result.stats.sent == 0
        assert result.reason == REASON_IDLE
        assert shutdown.pauses[0] == 1
        printer.assert_has_line('[ERROR] [run-1] Unexpected error while processing: bug')

    def test_counts_balance_after_every_batch(self, client, make_run, printer):
        self.fill(client, 7)
        client.failing_bodies.update({'body-2', 'body-5'})
        result = make_run(batch_size=3).run()
        assert result.stats.received == 7
        assert result.stats.sent + result.stats.failed == result.stats.received
        assert result.stats.batches_processed == 3
        assert printer.count('Total processed so far') == 3

    def test_cleanup_error_still_counts_sent_batch(self, client, make_run, printer):
        self.fill(client, 6)
        client.delete_errors.append(RuntimeError('bug'))
        result = make_run(batch_size=3, budget=3, max_workers=1).run()
        assert result.reason == REASON_BUDGET
        assert result.stats == RunStats(received=3, sent=3, failed=0, batches_processed=1, deleted=0,
                                        delete_failed=3)
        assert len(client.send_calls) == 3
        assert len(client.messages('queue')) == 3
        assert len(client.messages('dlq')) == 6
        printer.assert_has_line('[ERROR] [run-1] Unexpected error while cleaning, sent messages remain in the DLQ: bug')
