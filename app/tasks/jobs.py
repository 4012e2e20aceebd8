from app.tasks.celery_app import celery
from app.tasks import worker_jobs


@celery.task(name="app.tasks.jobs.send_booking_confirmation")
def send_booking_confirmation(booking_id: str, recipient_email: str):
    return worker_jobs.send_booking_confirmation(booking_id, recipient_email)


@celery.task(name="app.tasks.jobs.process_email_queue")
def process_email_queue(limit: int = 50):
    return worker_jobs.process_email_queue(limit=limit)
