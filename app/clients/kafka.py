import json
import os
from datetime import datetime, timezone
from decimal import Decimal

from aiokafka import AIOKafkaProducer


class KafkaProducerClient:
    def __init__(self, bootstrap_servers: str | None = None, topic: str | None = None) -> None:
        self.bootstrap_servers = bootstrap_servers or os.getenv("KAFKA_BOOTSTRAP_SERVERS", "localhost:9092")
        self.topic = topic or os.getenv("KAFKA_COST_ALERT_TOPIC", "moderation_cost_alerts")

    async def send_cost_alert(self, monthly_total: Decimal, threshold: Decimal) -> None:
        message = {
            "kind": "vision_cost_threshold_exceeded",
            "monthly_total": str(monthly_total),
            "threshold": str(threshold),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        producer = AIOKafkaProducer(
            bootstrap_servers=self.bootstrap_servers,
            value_serializer=lambda value: json.dumps(value).encode("utf-8"),
        )
        await producer.start()
        try:
            await producer.send_and_wait(self.topic, message)
        finally:
            await producer.stop()
