import asyncio
import logging
from contextlib import asynccontextmanager, suppress
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, Response

from adapters.whatsapp.evolution_adapter import EvolutionAdapter
from adapters.whatsapp.whatsapp_adapter import WhatsAppAdapter
from agent.main import Services, build_services
from shared.config import Settings
from shared.message_worker import _queue_worker, expiry_sweep_loop, message_queue

logger = logging.getLogger(__name__)
logging.basicConfig(level=logging.INFO)


def create_app(services: Optional[Services] = None, adapter: Optional[WhatsAppAdapter] = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        settings = Settings.from_env() if services is None else services.settings
        app.state.services = services or build_services(settings)
        app.state.adapter = adapter or EvolutionAdapter.from_settings(settings)

        stop_event = asyncio.Event()
        worker_task = asyncio.create_task(
            _queue_worker(stop_event, app.state.services, app.state.adapter), name="queue_worker"
        )
        sweep_task = asyncio.create_task(expiry_sweep_loop(stop_event, app.state.services), name="expiry_sweep")
        tasks = (worker_task, sweep_task)

        try:
            yield
        finally:
            # Cooperative shutdown
            stop_event.set()
            try:
                await asyncio.wait_for(asyncio.gather(*tasks, return_exceptions=True), timeout=5.0)
            except asyncio.TimeoutError:
                # Fallback: force-cancel any stragglers
                for t in tasks:
                    if not t.done():
                        t.cancel()
                for t in tasks:
                    with suppress(asyncio.CancelledError):
                        await t
            app.state.services.embedding_jobs.shutdown()

    app = FastAPI(lifespan=lifespan)

    @app.get("/")
    def health_check():
        return JSONResponse(content={"status": "ok"}, status_code=200)

    @app.head("/")
    def head_root():
        return Response(status_code=200)

    @app.post("/webhook")
    async def webhook(request: Request):
        try:
            raw_data = await request.json()
        except ValueError:
            logger.exception("Failed to parse JSON body")
            return Response(status_code=200)

        msg = request.app.state.adapter.parse_incoming(raw_data)
        if msg is None:
            return JSONResponse({"status": "ignored"}, status_code=200)

        # duplicates are dropped by the router; the provider only needs a fast 200
        message_queue.append(msg)
        logger.info("Enqueued WhatsApp message %s", msg.message_id)
        return JSONResponse({"status": "queued"}, status_code=200)

    @app.get("/network/{user_id}")
    async def network_graph(user_id: str, request: Request):
        services: Services = request.app.state.services
        graph = await asyncio.to_thread(services.network.build, user_id)
        if graph is None:
            raise HTTPException(status_code=404, detail="user not found")
        return graph.model_dump(mode="json")

    @app.post("/contacts/{owner_id}/embeddings")
    async def backfill_embeddings(owner_id: str, request: Request):
        services: Services = request.app.state.services
        scheduled = await asyncio.to_thread(services.embedding_jobs.regenerate_all, owner_id)
        return {"scheduled": scheduled}

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
