from flask import Flask, request, render_template, redirect, jsonify, session, flash, url_for
from werkzeug.security import generate_password_hash, check_password_hash
import util
import os
import base64
import logging
from io import BytesIO
from dotenv import load_dotenv
from PIL import Image, UnidentifiedImageError

from models import new_history_entry
from store import MongoStore, DuplicateUserError

load_dotenv()

logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("ecosnap")

application = Flask(__name__)
application.secret_key = os.environ.get("SECRET_KEY") or os.urandom(24)  # Required for session
application.config['MAX_CONTENT_LENGTH'] = int(os.environ.get("MAX_UPLOAD_MB", "10")) * 1024 * 1024

# MongoDB setup, opened on first use
MONGO_URI = os.environ.get("MONGO_URI", "mongodb://localhost:27017/")
MONGO_DB = os.environ.get("MONGO_DB", "ecosnap")
store = None

THUMBNAIL_SIZE = (256, 256)

# formats Gemini accepts inline; anything else is re-encoded to JPEG
INLINE_IMAGE_TYPES = {
    'JPEG': 'image/jpeg',
    'MPO': 'image/jpeg',  # multi-picture JPEG from phone cameras
    'PNG': 'image/png',
    'WEBP': 'image/webp',
}

IMAGE_ERRORS = (UnidentifiedImageError, Image.DecompressionBombError, OSError, SyntaxError, ValueError)


def get_store():
    global store
    if store is None:
        store = MongoStore.connect(MONGO_URI, MONGO_DB)
    return store


def encode_jpeg(photo, size=None, quality=90):
    with Image.open(BytesIO(photo)) as img:
        img = img.convert('RGB')
        if size:
            img.thumbnail(size)
        buf = BytesIO()
        img.save(buf, format='JPEG', quality=quality)
    return buf.getvalue()


def read_upload(image_data):
    """Returns (bytes, content type) for an uploaded image, or None if it is not one."""
    photo = image_data.read()
    if not photo:
        return None
    try:
        with Image.open(BytesIO(photo)) as img:
            img.verify()
            fmt = img.format
        content_type = INLINE_IMAGE_TYPES.get(fmt)
        if content_type is None:
            photo = encode_jpeg(photo)
            content_type = 'image/jpeg'
    except IMAGE_ERRORS as e:
        logger.info("Rejected upload %r: %s", image_data.filename, e)
        return None
    return photo, content_type


def make_thumbnail(photo):
    try:
        data = encode_jpeg(photo, size=THUMBNAIL_SIZE, quality=80)
    except IMAGE_ERRORS as e:
        logger.warning("Could not build thumbnail: %s", e)
        return ''
    return 'data:image/jpeg;base64,' + base64.b64encode(data).decode('utf-8')


def serialize_entry(entry):
    return {
        'id': entry.get('entry_id'),
        'imageUrl': entry.get('image_url', ''),
        'wasteType': entry.get('waste_type'),
        'confidence': entry.get('confidence'),
        'userDescription': entry.get('user_description', ''),
        'recyclingInstructions': entry.get('recycling_instructions', ''),
        'timestamp': entry.get('timestamp'),
    }


@application.template_filter('percent')
def percent(value):
    return f"{float(value) * 100:.2f}%"


@application.template_global()
def instruction_steps(raw):
    return util.instruction_steps(raw)


util.load_artifacts()


#home page
@application.route("/")
def home():
    if 'user_id' not in session:
        return redirect(url_for('login'))
    return render_template("home.html")


@application.route("/login", methods=['GET', 'POST'])
def login():
    if 'user_id' in session:
        return redirect(url_for('home'))
    if request.method == 'POST':
        email = request.form.get('email')
        password = request.form.get('password')
        user = get_store().find_user_by_email(email) if email and password else None
        if user and check_password_hash(user.get('password', ''), password):
            session['user_id'] = str(user['_id'])
            return redirect(url_for('home'))
        flash('Invalid email or password')
    return render_template("auth.html", is_login=True)


@application.route("/signup", methods=['GET', 'POST'])
def signup():
    if 'user_id' in session:
        return redirect(url_for('home'))
    if request.method == 'POST':
        name = request.form.get('name')
        email = request.form.get('email')
        password = request.form.get('password')
        confirm_password = request.form.get('confirm_password')
        if not email or not password:
            flash('Email and password are required')
            return render_template("auth.html", is_login=False)
        if password != confirm_password:
            flash('Passwords do not match')
            return render_template("auth.html", is_login=False)
        try:
            user_id = get_store().create_user(name, email, generate_password_hash(password))
        except DuplicateUserError:
            flash('Email already registered')
            return render_template("auth.html", is_login=False)
        session['user_id'] = user_id
        return redirect(url_for('home'))
    return render_template("auth.html", is_login=False)


@application.route("/logout")
def logout():
    session.pop('user_id', None)
    return redirect(url_for('login'))


@application.route("/api/register", methods=["POST"])
def register():
    data = request.get_json(silent=True) or {}
    name = data.get('name')
    email = data.get('email')
    password = data.get('password')
    if not email or not password:
        return jsonify({'error': 'Email and password are required'}), 400
    try:
        user_id = get_store().create_user(name, email, generate_password_hash(password))
    except DuplicateUserError:
        return jsonify({'error': 'User with this email already exists'}), 409
    return jsonify({'user': {'id': user_id, 'name': name, 'email': email}}), 201


#classify waste
@application.route("/classifywaste", methods=["POST"])
def classifywaste():
    if 'user_id' not in session:
        return jsonify({'error': 'Not authenticated'}), 401
    if 'file' not in request.files or request.files['file'].filename == '':
        return jsonify({'error': 'Please upload an image first.'}), 400
    upload = read_upload(request.files['file'])
    if upload is None:
        return jsonify({'error': 'The uploaded file is not a supported image.'}), 400
    photo, content_type = upload

    try:
        classification = util.classify_waste(photo, content_type)
    except util.ClassificationError as e:
        return jsonify({'error': str(e)}), 502

    response = classification.to_dict()
    response['recycling_instructions'] = ''
    response['steps'] = []
    try:
        instructions = util.generate_instructions(classification.waste_type, classification.details)
    except util.InstructionError as e:
        # the classification is still valid on its own
        response['instructions_error'] = str(e)
    else:
        response['recycling_instructions'] = instructions.recycling_instructions
        response['steps'] = util.format_steps(instructions.recycling_instructions)

    entry = new_history_entry(
        classification.waste_type,
        classification.confidence,
        recycling_instructions=response['recycling_instructions'],
        image_url=make_thumbnail(photo),
    )
    get_store().create_history_entry(session['user_id'], entry)
    response['entry_id'] = entry['entry_id']
    return jsonify(response)


@application.route("/instructions", methods=["POST"])
def instructions():
    if 'user_id' not in session:
        return jsonify({'error': 'Not authenticated'}), 401
    data = request.get_json(silent=True) or {}
    waste_type = data.get('waste_type')
    details = data.get('details')
    if not waste_type or not details:
        return jsonify({'error': 'Please classify the image first.'}), 400
    user_description = (data.get('user_description') or '').strip()
    details = util.compose_details(details, user_description)
    try:
        result = util.generate_instructions(waste_type, details)
    except util.InstructionError as e:
        return jsonify({'error': str(e)}), 502
    entry_id = data.get('entry_id')
    if entry_id:
        # keep the history entry in step with what the user now sees
        get_store().update_history_entry(session['user_id'], entry_id, {
            'user_description': user_description,
            'recycling_instructions': result.recycling_instructions,
        })
    return jsonify(
        recycling_instructions=result.recycling_instructions,
        steps=util.format_steps(result.recycling_instructions),
    )


@application.route("/api/history", methods=["GET", "POST"])
def history_api():
    if 'user_id' not in session:
        return jsonify({'error': 'Unauthorized'}), 401
    user_id = session['user_id']
    if request.method == 'GET':
        return jsonify([serialize_entry(e) for e in get_store().list_history_for_user(user_id)])

    data = request.get_json(silent=True) or {}
    waste_type = data.get('wasteType')
    confidence = data.get('confidence')
    if not waste_type or confidence is None:
        return jsonify({'error': 'wasteType and confidence are required'}), 400
    try:
        entry = new_history_entry(
            waste_type,
            confidence,
            recycling_instructions=data.get('recyclingInstructions'),
            user_description=data.get('userDescription'),
            image_url=data.get('imageUrl'),
        )
    except (TypeError, ValueError):
        return jsonify({'error': 'confidence must be a number'}), 400
    get_store().create_history_entry(user_id, entry)
    return jsonify(serialize_entry(entry)), 201


@application.route("/history")
def history():
    if 'user_id' not in session:
        return redirect(url_for('login'))
    user = get_store().find_user_by_id(session['user_id'])
    if not user:
        session.pop('user_id', None)
        return redirect(url_for('login'))
    entries = get_store().list_history_for_user(session['user_id'])
    return render_template("history.html", user=user, entries=entries)


@application.route("/guides")
def guide_index():
    return jsonify(guides=[
        {'waste_type': util.get_recycling_guide(name)['waste_type'], 'url': url_for('guide', waste_type=name)}
        for name in util.get_guide_names()
    ])


@application.route("/guides/<path:waste_type>")
def guide(waste_type):
    return jsonify(util.get_recycling_guide(waste_type))


@application.errorhandler(413)
def upload_too_large(e):
    return jsonify({'error': 'The uploaded file is too large.'}), 413


# here is route of 404 means page not found error
@application.errorhandler(404)
def page_not_found(e):
    return render_template("404.html"), 404


if __name__ == "__main__":
    application.run()
