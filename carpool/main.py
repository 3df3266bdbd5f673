import asyncio
import datetime as dt
import logging
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import HTMLResponse
from pydantic import BaseModel, ConfigDict, Field

from carpool.app import CarpoolApp
from carpool.backend import BackendClient
from carpool.database.mongo_client import close_db, get_db
from carpool.database.redis_client import close_redis, connect_redis
from carpool.errors import ValidationFailed, WriteFailed
from carpool.models.ride_model import Role
from carpool.prefs import LocalPreferences
from carpool.screens.base import Screen
from carpool.screens.create_ride import CreateRideScreen
from carpool.screens.home import HomeScreen
from carpool.screens.messages import MessagesScreen
from carpool.settings import configure_logging, settings

logger = logging.getLogger(__name__)

app = FastAPI(title="Carpool Client", version="1.0.0")


@app.on_event("startup")
async def connect_backend():
    configure_logging()
    redis_client = await connect_redis()
    app.state.backend = BackendClient(get_db(), redis_client, settings.CHANGES_CHANNEL_PREFIX)
    app.state.prefs = LocalPreferences()


@app.on_event("shutdown")
async def disconnect_backend():
    backend = getattr(app.state, "backend", None)
    if backend is not None:
        await close_redis(backend.redis)
    close_db()


def get_backend(request: Request) -> BackendClient:
    return request.app.state.backend


def get_prefs(request: Request) -> LocalPreferences:
    return request.app.state.prefs


class RideFormIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    from_location: str = Field("", alias="from")
    to_location: str = Field("", alias="to")
    date: Optional[dt.date] = None
    time: Optional[dt.time] = None
    seats: str = ""
    price: str = ""


def _bookings_view(screen: HomeScreen) -> dict:
    return {
        "type": "bookings",
        "role": screen.role.value,
        "title": screen.section_title,
        "empty": screen.is_empty,
        "loading": screen.loading,
        "bookings": [b.to_view() for b in screen.bookings],
    }


@app.get("/", response_class=HTMLResponse)
async def homepage():
    return """
<!doctype html>
<html lang=en>
<head>
<meta charset=utf-8>
<meta name=viewport content="width=device-width, initial-scale=1">
<title>Carpool</title>
<style>
:root{--bg:#0f172a;--muted:#94a3b8;--text:#e5e7eb;--accent:#22c55e;--accent2:#3b82f6;--danger:#ef4444}
*{box-sizing:border-box}body{margin:0;background:#0f172a;color:var(--text);font-family:system-ui,-apple-system,Segoe UI,Roboto,Ubuntu,Helvetica,Arial,sans-serif}
.container{max-width:720px;margin:32px auto;padding:0 20px 80px}
.card{background:rgba(17,24,39,.9);border:1px solid #1f2937;border-radius:14px;padding:16px;margin-bottom:16px}
.card h3{margin:0 0 12px 0;font-size:16px}
.row{display:flex;gap:10px;margin-bottom:8px}
input{width:100%;padding:10px 12px;background:#0b1220;border:1px solid #1f2937;border-radius:10px;color:var(--text)}
button{padding:10px 12px;border:0;border-radius:10px;background:#1f2937;color:#fff;cursor:pointer}
button.active,button.primary{background:var(--accent)}
.item{padding:8px;border-bottom:1px solid #1f2937}
.muted{color:var(--muted);font-size:12px}
.error{color:var(--danger);font-size:12px}
.tab{display:none}.tab.shown{display:block}
nav{position:fixed;bottom:0;left:0;right:0;display:flex;justify-content:space-around;background:#111827;padding:10px}
</style>
</head>
<body>
<div class=container>
  <div id=tab-home class="tab shown">
    <div class=card>
      <h3 id=user-name>...</h3>
      <div class=row>
        <button id=btn-rider class=active onclick="switchRole('rider')">Rider</button>
        <button id=btn-driver onclick="switchRole('driver')">Driver</button>
      </div>
    </div>
    <div class=card>
      <h3 id=section-title>Your Bookings</h3>
      <div id=empty-state class=muted>Nothing here yet</div>
      <div id=bookings></div>
    </div>
  </div>

  <div id=tab-create class=tab>
    <div class=card>
      <h3>Create Ride</h3>
      <div class=row><input id=from placeholder="From"><input id=to placeholder="To"></div>
      <div class=row><input id=date type=date><input id=time type=time></div>
      <div class=row><input id=seats type=number min=1 placeholder="Seats"><input id=price type=number step=0.01 min=0 placeholder="Price per seat"></div>
      <div class=row><button id=create-btn class=primary onclick="createRide()">Create Ride</button></div>
      <div id=create-msg class=muted></div>
    </div>
  </div>

  <div id=tab-messages class=tab>
    <div class=card><h3>Messages</h3><div class=muted>No conversations yet</div></div>
  </div>

  <div id=tab-profile class=tab>
    <div class=card><h3>Profile</h3><div id=profile-name></div><div id=profile-id class=muted></div></div>
  </div>
</div>
<nav>
  <button onclick="go('home')">Home</button>
  <button onclick="go('create')">Create</button>
  <button onclick="go('messages')">Messages</button>
  <button onclick="go('profile')">Profile</button>
</nav>

<script>
const api=location.origin
let ws=null
function show(t){document.querySelectorAll(".tab").forEach(e=>e.classList.remove("shown"));document.getElementById("tab-"+t).classList.add("shown")}
function go(t){if(ws)ws.send(JSON.stringify({type:"navigate",destination:t}))}
async function loadMe(){const r=await fetch(api+"/me");const j=await r.json();document.getElementById("user-name").textContent=j.user_name||"Not signed in"}
function connect(){ws=new WebSocket(api.replace(/^http/,"ws")+"/ws/bookings");ws.onmessage=e=>{const m=JSON.parse(e.data);if(m.type==="bookings")render(m);else if(m.type==="screen"){show(m.destination);if(m.destination==="home")render(m);if(m.destination==="profile"){document.getElementById("profile-name").textContent=m.user_name||"Not signed in";document.getElementById("profile-id").textContent=m.user_id||""}}else if(m.type==="error")document.getElementById("empty-state").textContent=m.message}}
function switchRole(r){document.getElementById("btn-rider").classList.toggle("active",r==="rider");document.getElementById("btn-driver").classList.toggle("active",r==="driver");if(ws)ws.send(JSON.stringify({type:"switch_role",role:r}))}
function render(m){document.getElementById("section-title").textContent=m.title;document.getElementById("empty-state").style.display=m.empty&&!m.loading?"block":"none";const el=document.getElementById("bookings");el.innerHTML="";m.bookings.forEach(b=>{const d=document.createElement("div");d.className="item";d.textContent=`${b.bookingId} • ${b.from||""} → ${b.to||""} • ${b.date||""} ${b.time||""}`;el.appendChild(d)})}
async function createRide(){const btn=document.getElementById("create-btn");btn.disabled=true;btn.textContent="Creating...";const b={from:document.getElementById("from").value,to:document.getElementById("to").value,date:document.getElementById("date").value||null,time:document.getElementById("time").value||null,seats:document.getElementById("seats").value,price:document.getElementById("price").value};const r=await fetch(api+"/rides",{method:"POST",headers:{"Content-Type":"application/json"},body:JSON.stringify(b)});const j=await r.json();btn.disabled=false;btn.textContent="Create Ride";document.getElementById("create-msg").textContent=r.ok?"Ride created successfully!":(j.detail.message||j.detail);if(r.ok)go("home")}
loadMe();connect();
</script>
</body>
</html>
"""


@app.get("/health")
async def health_check(backend: BackendClient = Depends(get_backend)):
    return {"status": "healthy", **(await backend.health())}


@app.get("/me")
async def current_user(prefs: LocalPreferences = Depends(get_prefs)):
    return {"user_id": prefs.user_id, "user_name": prefs.user_name}


@app.get("/bookings")
async def list_bookings(
    role: Role = Query(default=Role.RIDER),
    backend: BackendClient = Depends(get_backend),
    prefs: LocalPreferences = Depends(get_prefs),
):
    """One-shot snapshot of the live booking query for `role`."""
    screen = HomeScreen(backend, prefs)
    screen.role = role
    screen.start()
    try:
        screen.resume()
        await screen.wait_loaded()
        if screen.error is not None:
            raise HTTPException(status_code=502, detail=screen.error.message)
        return _bookings_view(screen)
    finally:
        screen.stop()


@app.post("/rides", status_code=201)
async def create_ride(
    body: RideFormIn,
    backend: BackendClient = Depends(get_backend),
    prefs: LocalPreferences = Depends(get_prefs),
):
    screen = CreateRideScreen(backend, prefs)
    screen.start()
    try:
        screen.form.from_location = body.from_location
        screen.form.to_location = body.to_location
        screen.form.seats = body.seats
        screen.form.price = body.price
        if body.date is not None:
            try:
                screen.select_date(body.date)
            except ValueError as e:
                raise HTTPException(
                    status_code=422,
                    detail={"field": "date", "kind": "InvalidDate", "message": str(e)},
                )
        if body.time is not None:
            screen.select_time(body.time)

        try:
            task = screen.submit()
        except ValidationFailed as e:
            raise HTTPException(status_code=422, detail=e.as_dict())

        try:
            ride = await task
        except WriteFailed as e:
            raise HTTPException(status_code=502, detail=f"Failed to create ride: {e.message}")
        return ride.to_document()
    finally:
        screen.stop()


@app.get("/messages")
async def list_messages(
    backend: BackendClient = Depends(get_backend),
    prefs: LocalPreferences = Depends(get_prefs),
):
    return MessagesScreen(backend, prefs).to_view()


def _screen_frame(screen: Screen) -> dict:
    view = _bookings_view(screen) if isinstance(screen, HomeScreen) else screen.to_view()
    return {**view, "type": "screen", "destination": screen.destination.value}


@app.websocket("/ws/bookings")
async def bookings_feed(websocket: WebSocket):
    """Live booking list plus bottom navigation for one panel.

    Navigation runs through a per-connection app stack, so the home query is
    released while another destination is shown.
    """
    await websocket.accept()
    outbox: asyncio.Queue = asyncio.Queue()

    def _on_change(screen: Screen):
        if not isinstance(screen, HomeScreen) or screen is not shell.top:
            return
        if screen.error is not None:
            outbox.put_nowait({"type": "error", "message": screen.error.message})
        else:
            outbox.put_nowait(_bookings_view(screen))

    shell = CarpoolApp(websocket.app.state.backend, websocket.app.state.prefs, listener=_on_change)
    home = shell.launch()

    async def _send():
        while True:
            await websocket.send_json(await outbox.get())

    async def _receive():
        while True:
            message = await websocket.receive_json()
            kind = message.get("type")
            try:
                if kind == "switch_role":
                    home.switch_role(message.get("role"))
                elif kind == "navigate":
                    shell.top.select_destination(message.get("destination"))
                    outbox.put_nowait(_screen_frame(shell.top))
                else:
                    outbox.put_nowait({"type": "error", "message": f"Unknown message type: {kind}"})
            except ValueError as e:
                outbox.put_nowait({"type": "error", "message": str(e)})

    sender = asyncio.create_task(_send())
    receiver = asyncio.create_task(_receive())
    try:
        done, pending = await asyncio.wait({sender, receiver}, return_when=asyncio.FIRST_COMPLETED)
        for task in pending:
            task.cancel()
        for task in done:
            error = task.exception()
            if error is not None and not isinstance(error, WebSocketDisconnect):
                logger.warning("Booking feed closed with error: %s", error)
    finally:
        shell.shutdown()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=settings.PORT)
