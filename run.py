from agrirent import create_app
from agrirent.extensions import db
from agrirent.models import Booking, Equipment, Notification, Review, User

app = create_app()


@app.shell_context_processor
def make_shell_context():
    return {
        "db": db,
        "User": User,
        "Equipment": Equipment,
        "Booking": Booking,
        "Review": Review,
        "Notification": Notification,
    }


if __name__ == "__main__":
    app.run()
