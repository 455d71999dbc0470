"""RQ worker process entrypoint for notification jobs."""

from rq import Worker

from services.job_queue import NOTIFICATION_QUEUE_NAME, get_redis_connection


def main():
    redis_conn = get_redis_connection()
    worker = Worker([NOTIFICATION_QUEUE_NAME], connection=redis_conn)
    worker.work(with_scheduler=True)


if __name__ == "__main__":
    main()
