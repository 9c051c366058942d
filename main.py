import logging
import os
import re
import shutil
import time
from typing import List, Optional

from fastapi import Depends, FastAPI, File, Form, Request, UploadFile
from fastapi.responses import RedirectResponse
from fastapi.staticfiles import StaticFiles
from starlette.middleware.sessions import SessionMiddleware

import database
import fallback
from auth import (
    ADMIN_SESSION_KEY,
    USER_SESSION_KEY,
    AuthFailure,
    FlashQueue,
    LoginRequired,
    authenticate_admin,
    authenticate_user,
    get_flash,
    hash_password,
    require_admin,
    require_user,
)
from config import ADMIN_EMAIL, ADMIN_PASSWORD, DATABASE_NAME, DATABASE_URL, PORT, SESSION_SECRET, UPLOAD_DIR
from database import (
    AvailabilityMonitor,
    NotFound,
    Store,
    StoreError,
    StoreUnavailable,
    ValidationFailure,
    get_monitor,
    get_store,
    translate_errors,
)
from fallback import FromStore

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

SITE_NAME = "ESIGN IMAGE STUDIO"
SITE_TITLE = "ESIGN IMAGE STUDIO - Capturing Life's Moments"
DASHBOARD_URL = "/admin/dashboard"

app = FastAPI(title="ESIGN Image Studio")

app.add_middleware(SessionMiddleware, secret_key=SESSION_SECRET, https_only=False)
app.mount("/uploads", StaticFiles(directory=UPLOAD_DIR, check_dir=False), name="uploads")

DEFAULT_SLIDES = [
    {"title": "Wedding Photography", "subtitle": "Capturing your special day with elegance", "imagePath": "https://www.ktpress.rw/wp-content/uploads/2019/07/Bertrand.jpg", "linkUrl": "/signup", "order": 1},
    {"title": "Portrait Sessions", "subtitle": "Professional headshots & portraits", "imagePath": "https://encrypted-tbn0.gstatic.com/images?q=tbn:ANd9GcQTV-XMZQ1wSkHHeyBzPsXTMBbs3zrY0oIr3Q&s", "linkUrl": "/signup", "order": 2},
    {"title": "Event Coverage", "subtitle": "Corporate & social events", "imagePath": "https://encrypted-tbn0.gstatic.com/images?q=tbn:ANd9GcTqV3jXUW7KxcCISRfqZTm7OJYMpYaYJDbkOQ&s", "linkUrl": "/signup", "order": 3},
]

# ------------------------
# Utils
# ------------------------

def redirect(url: str) -> RedirectResponse:
    return RedirectResponse(url, status_code=303)


def page(request: Request, **payload) -> dict:
    """Page payload plus the session's flash messages, which are consumed."""
    payload["messages"] = FlashQueue(request.session).peek_and_clear()
    return payload


def source_name(source) -> str:
    return "store" if isinstance(source, FromStore) else "fallback"


def require_store(store: Optional[Store], monitor: AvailabilityMonitor) -> Store:
    # Writes are refused outright while degraded; nothing is buffered.
    if not fallback.is_available(store, monitor):
        raise StoreUnavailable("Database unavailable")
    return store


def flash_failure(flash: FlashQueue, message: str, error: Exception) -> None:
    logger.error("%s: %s", message, error)
    if isinstance(error, StoreUnavailable):
        message = f"{message}: database unavailable, changes were not saved"
    elif isinstance(error, OSError):
        message = f"{message}: the uploaded file could not be stored"
    flash.error(message)


def submitted(**fields) -> dict:
    """Keep only the form fields that were actually sent."""
    return {k: v for k, v in fields.items() if v is not None}


def split_features(values: Optional[List[str]]) -> Optional[List[str]]:
    if values is None:
        return None
    return [item.strip() for v in values for item in re.split(r"[,\n]", v) if item.strip()]


def uploaded(upload: Optional[UploadFile]) -> Optional[UploadFile]:
    # Browsers post an empty file part when nothing was chosen
    if upload is not None and upload.filename:
        return upload
    return None


def save_upload(upload: UploadFile) -> str:
    os.makedirs(UPLOAD_DIR, exist_ok=True)
    filename = f"{int(time.time() * 1000)}-{os.path.basename(upload.filename)}"
    with open(os.path.join(UPLOAD_DIR, filename), "wb") as f:
        shutil.copyfileobj(upload.file, f)
    return f"/uploads/{filename}"


# ------------------------
# Startup
# ------------------------

def seed_defaults(store: Store) -> None:
    try:
        if ADMIN_EMAIL and ADMIN_PASSWORD and store.admins.count() == 0:
            store.admins.create({"email": ADMIN_EMAIL, "password": hash_password(ADMIN_PASSWORD)})
            logger.info("Default admin created")
        if store.settings.get() is None:
            store.settings.upsert({})
            logger.info("Default settings created")
        if store.services.count() == 0:
            store.services.insert_many(
                {k: v for k, v in s.items() if k != "_id"} for s in fallback.services()
            )
            logger.info("Default services created")
        if store.carousel.count() == 0:
            store.carousel.insert_many(DEFAULT_SLIDES)
            logger.info("Default carousel slides created")
    except StoreError as e:
        logger.warning("Skipping default data: %s", e)


@app.on_event("startup")
def connect_database():
    os.makedirs(UPLOAD_DIR, exist_ok=True)
    store = database.connect_store(database.monitor)
    if store is not None and database.monitor.is_connected():
        seed_defaults(store)


@app.on_event("shutdown")
def disconnect_database():
    database.close_store()


@app.exception_handler(LoginRequired)
async def login_required_handler(request: Request, exc: LoginRequired):
    return redirect(exc.login_url)


# ------------------------
# Public pages
# ------------------------

@app.get("/")
def home(request: Request, store=Depends(get_store), monitor=Depends(get_monitor)):
    source = fallback.load_home(store, monitor)
    content = source.value
    return page(
        request,
        title=content.settings.get("siteTitle") or SITE_TITLE,
        companyName=content.settings.get("siteName") or SITE_NAME,
        settings=content.settings,
        services=content.services,
        carouselSlides=content.carousel_slides,
        userId=request.session.get(USER_SESSION_KEY),
        source=source_name(source),
    )


@app.get("/health")
def health(store=Depends(get_store), monitor=Depends(get_monitor)):
    """Report whether pages are being served from MongoDB or the fallback data."""
    response = {
        "databaseConfigured": bool(DATABASE_URL),
        "databaseName": DATABASE_NAME,
        "mongoConnected": monitor.is_connected(),
        "mode": "store" if fallback.is_available(store, monitor) else "fallback",
        "collections": [],
        "error": None,
    }
    if response["mode"] == "store":
        try:
            with translate_errors():
                response["collections"] = sorted(store.db.list_collection_names())
        except StoreError as e:
            response["error"] = str(e)
    return response


# Auth
@app.get("/signup")
def signup_page(request: Request):
    return page(request, title=f"Sign Up - {SITE_NAME}")


@app.post("/register")
def register(
    name: str = Form(""),
    email: str = Form(""),
    password: str = Form(""),
    phone: str = Form(""),
    location: str = Form(""),
    store=Depends(get_store),
    monitor=Depends(get_monitor),
    flash: FlashQueue = Depends(get_flash),
):
    try:
        users = require_store(store, monitor).users
        if not password:
            raise ValidationFailure("Password is required")
        if users.find_one({"email": email}):
            raise ValidationFailure("Email already registered")
        users.create({
            "name": name,
            "email": email,
            "password": hash_password(password),
            "phone": phone,
            "location": location,
        })
    except StoreError as e:
        logger.info("Registration failed for %s: %s", email, e)
        flash.error("Registration failed. Email might already exist.")
        return redirect("/signup")
    flash.success("Account created successfully! Please login.")
    return redirect("/login")


@app.get("/login")
def login_page(request: Request):
    return page(request, title=f"Login - {SITE_NAME}")


@app.post("/login")
def login(
    request: Request,
    email: str = Form(""),
    password: str = Form(""),
    store=Depends(get_store),
    monitor=Depends(get_monitor),
    flash: FlashQueue = Depends(get_flash),
):
    try:
        user_id = authenticate_user(require_store(store, monitor), email, password)
    except AuthFailure:
        flash.error("Invalid credentials")
        return redirect("/login")
    except StoreError as e:
        logger.error("Login error: %s", e)
        flash.error("Login error")
        return redirect("/login")
    request.session[USER_SESSION_KEY] = user_id
    return redirect("/")


@app.get("/logout")
def logout(request: Request):
    request.session.clear()
    return redirect("/")


# Bookings
@app.get("/book/{service_id}")
def book_page(
    service_id: str,
    request: Request,
    user_id: str = Depends(require_user),
    store=Depends(get_store),
    monitor=Depends(get_monitor),
    flash: FlashQueue = Depends(get_flash),
):
    try:
        service = require_store(store, monitor).services.find_by_id(service_id)
        if service is None:
            raise NotFound(f"Service {service_id} not found")
    except StoreError as e:
        logger.info("Booking page unavailable: %s", e)
        flash.error("That service is not available for booking")
        return redirect("/")
    return page(request, title=f"Book {service['title']} - {SITE_NAME}", service=service)


@app.post("/book-service")
def book_service(
    serviceId: str = Form(""),
    bookingDate: str = Form(""),
    notes: str = Form(""),
    user_id: str = Depends(require_user),
    store=Depends(get_store),
    monitor=Depends(get_monitor),
    flash: FlashQueue = Depends(get_flash),
):
    try:
        store = require_store(store, monitor)
        if store.services.find_by_id(serviceId) is None:
            raise NotFound(f"Service {serviceId} not found")
        store.bookings.create({
            "userId": user_id,
            "serviceId": serviceId,
            "bookingDate": bookingDate,
            "notes": notes,
        })
    except StoreError as e:
        logger.info("Booking failed for user %s: %s", user_id, e)
        flash.error("Booking failed")
        return redirect("/")
    flash.success("Service booked successfully!")
    return redirect("/")


# ------------------------
# Admin
# ------------------------

@app.get("/admin/login")
def admin_login_page(request: Request):
    return page(request, title=f"Admin Login - {SITE_NAME}")


@app.post("/admin/login")
def admin_login(
    request: Request,
    email: str = Form(""),
    password: str = Form(""),
    store=Depends(get_store),
    monitor=Depends(get_monitor),
    flash: FlashQueue = Depends(get_flash),
):
    try:
        admin_id = authenticate_admin(store, monitor, email, password)
    except AuthFailure:
        flash.error("Invalid credentials")
        return redirect("/admin/login")
    except StoreError as e:
        logger.error("Admin login error: %s", e)
        flash.error("Login error")
        return redirect("/admin/login")
    request.session[ADMIN_SESSION_KEY] = admin_id
    return redirect(DASHBOARD_URL)


@app.get("/admin/logout")
def admin_logout(request: Request):
    request.session.clear()
    return redirect("/admin/login")


@app.get("/admin/dashboard")
def dashboard(
    request: Request,
    admin_id: str = Depends(require_admin),
    store=Depends(get_store),
    monitor=Depends(get_monitor),
):
    source = fallback.load_dashboard(store, monitor)
    content = source.value
    return page(
        request,
        title=f"Dashboard - {SITE_NAME}",
        settings=content.settings,
        services=content.services,
        carouselSlides=content.carousel_slides,
        bookings=content.bookings,
        mongoConnected=fallback.is_available(store, monitor),
        source=source_name(source),
    )


@app.post("/admin/settings")
def update_settings(
    siteName: Optional[str] = Form(None),
    siteTitle: Optional[str] = Form(None),
    projectTitle: Optional[str] = Form(None),
    heroTitle: Optional[str] = Form(None),
    heroSubtitle: Optional[str] = Form(None),
    email: Optional[str] = Form(None),
    phone: Optional[str] = Form(None),
    aboutText: Optional[str] = Form(None),
    admin_id: str = Depends(require_admin),
    store=Depends(get_store),
    monitor=Depends(get_monitor),
    flash: FlashQueue = Depends(get_flash),
):
    fields = submitted(
        siteName=siteName, siteTitle=siteTitle, projectTitle=projectTitle, heroTitle=heroTitle,
        heroSubtitle=heroSubtitle, email=email, phone=phone, aboutText=aboutText,
    )
    try:
        require_store(store, monitor).settings.upsert(fields)
        flash.success("Settings updated successfully!")
    except StoreError as e:
        flash_failure(flash, "Error updating settings", e)
    return redirect(DASHBOARD_URL)


@app.post("/admin/upload-logo")
def upload_logo(
    logo: Optional[UploadFile] = File(None),
    admin_id: str = Depends(require_admin),
    store=Depends(get_store),
    monitor=Depends(get_monitor),
    flash: FlashQueue = Depends(get_flash),
):
    logo = uploaded(logo)
    try:
        settings = require_store(store, monitor).settings
        if logo is None:
            flash.error("No file uploaded")
        else:
            settings.upsert({"logoPath": save_upload(logo)})
            flash.success("Logo uploaded successfully!")
    except (StoreError, OSError) as e:
        flash_failure(flash, "Error uploading logo", e)
    return redirect(DASHBOARD_URL)


# Services
@app.post("/admin/services")
def create_service(
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    icon: Optional[str] = Form(None),
    price: Optional[str] = Form(None),
    features: Optional[List[str]] = Form(None),
    isActive: Optional[str] = Form(None),
    order: Optional[str] = Form(None),
    serviceImage: Optional[UploadFile] = File(None),
    admin_id: str = Depends(require_admin),
    store=Depends(get_store),
    monitor=Depends(get_monitor),
    flash: FlashQueue = Depends(get_flash),
):
    fields = submitted(
        title=title, description=description, icon=icon, price=price,
        features=split_features(features), isActive=isActive, order=order,
    )
    image = uploaded(serviceImage)
    try:
        services = require_store(store, monitor).services
        if image is not None:
            fields["imagePath"] = save_upload(image)
        services.create(fields)
        flash.success("Service added successfully!")
    except (StoreError, OSError) as e:
        flash_failure(flash, "Error adding service", e)
    return redirect(DASHBOARD_URL)


@app.post("/admin/services/{service_id}/edit")
def edit_service(
    service_id: str,
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    icon: Optional[str] = Form(None),
    price: Optional[str] = Form(None),
    features: Optional[List[str]] = Form(None),
    isActive: Optional[str] = Form(None),
    order: Optional[str] = Form(None),
    admin_id: str = Depends(require_admin),
    store=Depends(get_store),
    monitor=Depends(get_monitor),
    flash: FlashQueue = Depends(get_flash),
):
    fields = submitted(
        title=title, description=description, icon=icon, price=price,
        features=split_features(features), isActive=isActive, order=order,
    )
    try:
        require_store(store, monitor).services.find_by_id_and_update(service_id, fields)
        flash.success("Service updated successfully!")
    except StoreError as e:
        flash_failure(flash, "Error updating service", e)
    return redirect(DASHBOARD_URL)


@app.post("/admin/services/{service_id}/delete")
def delete_service(
    service_id: str,
    admin_id: str = Depends(require_admin),
    store=Depends(get_store),
    monitor=Depends(get_monitor),
    flash: FlashQueue = Depends(get_flash),
):
    try:
        require_store(store, monitor).services.find_by_id_and_delete(service_id)
        flash.success("Service deleted successfully!")
    except StoreError as e:
        flash_failure(flash, "Error deleting service", e)
    return redirect(DASHBOARD_URL)


@app.post("/admin/services/{service_id}/upload-image")
def upload_service_image(
    service_id: str,
    serviceImage: Optional[UploadFile] = File(None),
    admin_id: str = Depends(require_admin),
    store=Depends(get_store),
    monitor=Depends(get_monitor),
    flash: FlashQueue = Depends(get_flash),
):
    image = uploaded(serviceImage)
    try:
        services = require_store(store, monitor).services
        if image is None:
            flash.error("No file uploaded")
        elif services.find_by_id(service_id) is None:
            raise NotFound(f"Service {service_id} not found")
        else:
            services.find_by_id_and_update(service_id, {"imagePath": save_upload(image)})
            flash.success("Service image uploaded successfully!")
    except (StoreError, OSError) as e:
        flash_failure(flash, "Error uploading service image", e)
    return redirect(DASHBOARD_URL)


# Carousel
@app.post("/admin/carousel")
def create_slide(
    title: Optional[str] = Form(None),
    subtitle: Optional[str] = Form(None),
    linkUrl: Optional[str] = Form(None),
    isActive: Optional[str] = Form(None),
    order: Optional[str] = Form(None),
    carouselImage: Optional[UploadFile] = File(None),
    admin_id: str = Depends(require_admin),
    store=Depends(get_store),
    monitor=Depends(get_monitor),
    flash: FlashQueue = Depends(get_flash),
):
    fields = submitted(title=title, subtitle=subtitle, isActive=isActive, order=order)
    fields["linkUrl"] = linkUrl or "/signup"
    image = uploaded(carouselImage)
    try:
        carousel = require_store(store, monitor).carousel
        fields["imagePath"] = save_upload(image) if image is not None else ""
        carousel.create(fields)
        flash.success("Carousel slide added successfully!")
    except (StoreError, OSError) as e:
        flash_failure(flash, "Error adding carousel slide", e)
    return redirect(DASHBOARD_URL)


@app.post("/admin/carousel/{slide_id}/edit")
def edit_slide(
    slide_id: str,
    title: Optional[str] = Form(None),
    subtitle: Optional[str] = Form(None),
    linkUrl: Optional[str] = Form(None),
    isActive: Optional[str] = Form(None),
    order: Optional[str] = Form(None),
    carouselImage: Optional[UploadFile] = File(None),
    admin_id: str = Depends(require_admin),
    store=Depends(get_store),
    monitor=Depends(get_monitor),
    flash: FlashQueue = Depends(get_flash),
):
    fields = submitted(title=title, subtitle=subtitle, linkUrl=linkUrl, isActive=isActive, order=order)
    image = uploaded(carouselImage)
    try:
        carousel = require_store(store, monitor).carousel
        if image is not None:
            fields["imagePath"] = save_upload(image)
        carousel.find_by_id_and_update(slide_id, fields)
        flash.success("Carousel slide updated successfully!")
    except (StoreError, OSError) as e:
        flash_failure(flash, "Error updating carousel slide", e)
    return redirect(DASHBOARD_URL)


@app.post("/admin/carousel/{slide_id}/delete")
def delete_slide(
    slide_id: str,
    admin_id: str = Depends(require_admin),
    store=Depends(get_store),
    monitor=Depends(get_monitor),
    flash: FlashQueue = Depends(get_flash),
):
    try:
        require_store(store, monitor).carousel.find_by_id_and_delete(slide_id)
        flash.success("Carousel slide deleted successfully!")
    except StoreError as e:
        flash_failure(flash, "Error deleting carousel slide", e)
    return redirect(DASHBOARD_URL)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=PORT)
