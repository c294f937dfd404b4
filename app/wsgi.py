from app.campus import create_app

app = create_app()
