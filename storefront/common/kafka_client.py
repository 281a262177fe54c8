import asyncio
from typing import Optional

from aiokafka import AIOKafkaProducer

from .config import settings

_producer: Optional[AIOKafkaProducer] = None
_producer_lock = asyncio.Lock()


async def get_producer() -> AIOKafkaProducer:
    global _producer
    if _producer is None:
        async with _producer_lock:
            if _producer is None:
                backoff = 1.0
                last_exc: Optional[BaseException] = None
                for _ in range(settings.KAFKA_CONNECT_ATTEMPTS):
                    try:
                        producer = AIOKafkaProducer(bootstrap_servers=settings.KAFKA_BOOTSTRAP_SERVERS)
                        await producer.start()
                        _producer = producer
                        break
                    except Exception as e:
                        last_exc = e
                        _producer = None
                        await asyncio.sleep(backoff)
                        backoff = min(backoff * 2, 30.0)
                if _producer is None:
                    # Propagate the last error after retries
                    raise last_exc or RuntimeError("Kafka producer start failed")
    return _producer


async def close_producer() -> None:
    global _producer
    if _producer is not None:
        await _producer.stop()
        _producer = None
