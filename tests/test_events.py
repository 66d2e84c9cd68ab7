import unittest

from repsense.events import Publisher


class PublisherTests(unittest.TestCase):
    def test_subscribers_receive_values_in_order(self) -> None:
        channel: Publisher[int] = Publisher("numbers")
        first, second = [], []
        channel.subscribe(first.append)
        channel.subscribe(second.append)
        for value in (1, 2, 3):
            channel.publish(value)
        self.assertEqual(first, [1, 2, 3])
        self.assertEqual(second, [1, 2, 3])

    def test_unsubscribe_stops_delivery_and_is_idempotent(self) -> None:
        channel: Publisher[str] = Publisher("words")
        seen = []
        unsubscribe = channel.subscribe(seen.append)
        channel.publish("a")
        unsubscribe()
        unsubscribe()
        channel.publish("b")
        self.assertEqual(seen, ["a"])
        self.assertEqual(len(channel), 0)

    def test_failing_subscriber_does_not_block_others(self) -> None:
        channel: Publisher[int] = Publisher("numbers")
        seen = []

        def broken(_value: int) -> None:
            raise RuntimeError("boom")

        channel.subscribe(broken)
        channel.subscribe(seen.append)
        with self.assertLogs("repsense.events", level="ERROR"):
            channel.publish(7)
        self.assertEqual(seen, [7])

    def test_subscriber_may_unsubscribe_during_publish(self) -> None:
        channel: Publisher[int] = Publisher("numbers")
        seen = []
        handles = {}

        def once(value: int) -> None:
            seen.append(value)
            handles["once"]()

        handles["once"] = channel.subscribe(once)
        channel.publish(1)
        channel.publish(2)
        self.assertEqual(seen, [1])


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
