from photo_lifecycle.main import app


app()
