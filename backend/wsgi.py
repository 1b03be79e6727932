from smartshop import create_app

app = create_app()
