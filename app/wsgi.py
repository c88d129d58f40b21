from app.ehs import create_app

app = create_app()
