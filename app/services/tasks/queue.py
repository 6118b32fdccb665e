from rq import Queue
from redis import Redis
from app.core.config import settings

_queue: Queue | None = None


def get_queue() -> Queue:
    global _queue
    if _queue is None:
        _queue = Queue(settings.RQ_QUEUE, connection=Redis.from_url(settings.REDIS_URL))
    return _queue

# Import inside function to avoid worker import cycles

def enqueue_peaks(audio_id: str, force: bool = False) -> str:
    from app.services.tasks.jobs import regenerate_peaks_job
    job = get_queue().enqueue(
        regenerate_peaks_job,
        audio_id,
        force,
        job_timeout=60 * 30,
        description=f"peaks for audio {audio_id}",
    )
    return job.get_id()


def enqueue_reencode(audio_id: str) -> str:
    from app.services.tasks.jobs import reencode_audio_job
    job = get_queue().enqueue(
        reencode_audio_job,
        audio_id,
        job_timeout=60 * 30,
        description=f"reencode audio {audio_id}",
    )
    return job.get_id()
