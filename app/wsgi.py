from app.vims import create_app

app = create_app()
