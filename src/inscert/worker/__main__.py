from inscert.worker.main import run

run()
