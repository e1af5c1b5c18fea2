from __future__ import annotations

from .app import db


class Event(db.Model):
    __tablename__ = "events"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    slug = db.Column(db.String(255), unique=True)
    location = db.Column(db.String(255))
    start_time = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, server_default=db.func.now())


class Ticket(db.Model):
    __tablename__ = "tickets"

    id = db.Column(db.Integer, primary_key=True)
    event_id = db.Column(
        db.Integer, db.ForeignKey("events.id", ondelete="CASCADE"), nullable=False
    )
    token = db.Column(db.String(255), unique=True, nullable=False)
    is_verified = db.Column(db.Boolean, nullable=False, default=False)
    event = db.relationship("Event", backref="tickets")


class Participant(db.Model):
    __tablename__ = "participants"

    id = db.Column(db.Integer, primary_key=True)
    ticket_id = db.Column(
        db.Integer, db.ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False
    )
    name = db.Column(db.String(255))
    email = db.Column(db.String(255))
    registered_at = db.Column(db.DateTime, server_default=db.func.now())
    ticket = db.relationship("Ticket", backref="participants")


class CertificateTemplateMulti(db.Model):
    __tablename__ = "certificate_templates_multi"

    id = db.Column(db.Integer, primary_key=True)
    event_id = db.Column(
        db.Integer, db.ForeignKey("events.id", ondelete="CASCADE"), nullable=False
    )
    template_index = db.Column(db.Integer, nullable=False)
    template_path = db.Column(db.String(255))
    template_fields = db.Column(db.Text, nullable=False, default="[]")
    template_size = db.Column(db.Text)
    __table_args__ = (
        db.UniqueConstraint(
            "event_id", "template_index", name="uix_cert_template_multi_event_index"
        ),
    )
    event = db.relationship("Event", backref="certificate_templates")


class Certificate(db.Model):
    __tablename__ = "certificates"

    id = db.Column(db.Integer, primary_key=True)
    participant_id = db.Column(
        db.Integer, db.ForeignKey("participants.id", ondelete="CASCADE")
    )
    template_id = db.Column(
        db.Integer,
        db.ForeignKey("certificate_templates_multi.id", ondelete="SET NULL"),
    )
    path = db.Column(db.String(255), nullable=False)
    sent = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, server_default=db.func.now())
    participant = db.relationship("Participant", backref="certificates")
