import asyncio
import logging
from datetime import timedelta

from schedulify import CronTaskRunner, IntervalTaskRunner, OneTimeTaskRunner, RunnerConfig
from schedulify.storages import InMemoryTaskStorage

logging.basicConfig(level=logging.DEBUG, format="%(asctime)s %(name)s %(levelname)s %(message)s")

interval_runner = IntervalTaskRunner(config=RunnerConfig(start=False))
one_time_runner = OneTimeTaskRunner()
cron_runner = CronTaskRunner()


async def heartbeat() -> None:
    print("heartbeat")


async def main():
    now = interval_runner.now()

    interval_runner.add_task(
        name="heartbeat",
        interval=1000,
        start_at=now,
        expire_at=now + timedelta(seconds=5),
        callback=heartbeat,
        on_remove=lambda task: print(f"Task {task.name} expired"),
    )
    one_time_runner.add_task(
        name="reminder",
        start_at=now + timedelta(seconds=2),
        callback=lambda: print("reminder"),
    )
    cron_runner.add_task(
        name="every five seconds",
        cron_expression="*/5 * * * * *",
        start_at=now,
        callback=lambda: print("cron tick"),
    )

    stops = [runner.start() for runner in (interval_runner, one_time_runner, cron_runner)]

    storage = InMemoryTaskStorage()
    await storage.create_tables()
    await asyncio.sleep(3)
    for runner in (interval_runner, one_time_runner, cron_runner):
        await storage.sync(runner)
    for snapshot in await storage.list_tasks():
        print(f"Stored {snapshot.type.value} task {snapshot.name}: {snapshot.total_run_count} run(s)")

    await asyncio.sleep(4)
    for stop in stops:
        stop()
    await storage.close()


if __name__ == "__main__":
    asyncio.run(main())
