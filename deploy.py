"""Modal deployment: ``modal deploy deploy.py``."""

import modal
from modal import App, Image, asgi_app

# Define the volume for persistent database storage
volume = modal.Volume.from_name("clarity-decisions-volume", create_if_missing=True)

image = (
    Image.debian_slim()
    .pip_install_from_pyproject("./pyproject.toml")
    .add_local_python_source(
        "ai_functions",
        "analysis",
        "backend",
        "config",
        "database",
        "entitlement",
        "errors",
        "instrumentor",
        "logging_config",
        "models",
        "prompts",
        "store",
        "workflow",
    )
)
app = App("clarity", image=image)


@app.function(
    volumes={"/data": volume},  # SQLite lives on the volume
    min_containers=1,
    secrets=[
        modal.Secret.from_name("groq-key"),
        modal.Secret.from_name("cerebras-key"),
    ],
)
@modal.concurrent(max_inputs=50)
@asgi_app()
def fastapi_app():
    from backend import web_app

    return web_app
