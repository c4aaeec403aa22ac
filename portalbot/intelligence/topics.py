"""Keyword router -- maps a normalised query to a topic and a canned reply.

Rules are evaluated in declaration order and the first rule whose keywords
hit wins. ``keywords`` are substring tests against the whole query;
``words`` are whole-token tests, for short keywords ("hi") that would
otherwise fire inside longer words.
"""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from typing import Callable

from portalbot.intelligence.matching import first_match
from portalbot.knowledge.base import (
    INTERVIEW_TIPS,
    JOB_SEARCH_TIPS,
    PLATFORM_INFO,
    RESUME_TIPS,
    ROLES,
    format_fee,
    normalize_role,
)


@dataclass
class SessionContext:
    """What the router knows about the caller."""

    session_id: str = ""
    username: str | None = None
    is_logged_in: bool = False
    user_role: str | None = None
    context: dict = field(default_factory=dict)

    @property
    def role(self) -> str | None:
        """Role from the latest message context, else the connection's role."""
        user = self.context.get("user") if isinstance(self.context, dict) else None
        if isinstance(user, dict):
            role = normalize_role(user.get("role"))
            if role:
                return role
        return normalize_role(self.user_role)

    def with_context(self, context) -> "SessionContext":
        return SessionContext(
            session_id=self.session_id,
            username=self.username,
            is_logged_in=self.is_logged_in,
            user_role=self.user_role,
            context=context if isinstance(context, dict) else {},
        )


Responder = Callable[[str, SessionContext, random.Random], str]


@dataclass(frozen=True)
class TopicRule:
    name: str
    responder: Responder
    keywords: tuple[str, ...] = ()
    words: tuple[str, ...] = ()
    excludes: tuple[str, ...] = ()

    def matches(self, query: str) -> bool:
        if any(x in query for x in self.excludes):
            return False
        if any(k in query for k in self.keywords):
            return True
        if self.words:
            tokens = set(query.split())
            return any(w in tokens for w in self.words)
        return False


def _has(query: str, *needles: str) -> bool:
    return any(n in query for n in needles)


def _role_label(session: SessionContext) -> str | None:
    role = session.role
    return ROLES[role]["label"] if role else None


def _fee_lines() -> str:
    return "\n".join(f"• {info['label']}: {format_fee(key)}" for key, info in ROLES.items())


# ---------------------------------------------------------------------------
# Responders
# ---------------------------------------------------------------------------

def _respond_role_selection(query: str, session: SessionContext, rng: random.Random) -> str:
    lines = [f"There are four roles on {PLATFORM_INFO['name']}:", ""]
    for key, info in ROLES.items():
        lines.append(f"• {info['label']} ({format_fee(key)}) -- {info['pitch']}")
    lines.append("")
    label = _role_label(session)
    if label:
        lines.append(f"You're currently signed up as a {label}. You can switch roles later from your dashboard.")
    else:
        lines.append("Pick the role that matches what you want to do when you register.")
    return "\n".join(lines)


def _respond_job_seeker(query: str, session: SessionContext, rng: random.Random) -> str:
    if "interview" in query:
        tip = rng.choice(INTERVIEW_TIPS)
        return f"Interview tip: {tip}. Would you like more interview preparation advice?"

    if "salary" in query:
        return (
            "Salary information is shown on most job listings, and you can filter the Avenue "
            "job board by salary range."
        )

    if _has(query, "track", "status"):
        return (
            "Check the 'Applications' section of your dashboard to see the status of every "
            "job you've applied for."
        )

    if _has(query, "apply", "application"):
        return (
            "To apply for a job, open the listing on the Avenue job board and click 'Apply Now'. "
            "You'll need a completed profile and an uploaded resume first."
        )

    if _has(query, "save", "bookmark", "favorite"):
        return (
            "Click the bookmark icon on any job listing to save it. Saved jobs appear under "
            "'Favorites' in your dashboard."
        )

    if "search" in query:
        return (
            "Search the Avenue job board by keyword, job title or company, then narrow the "
            "results with the location, job type and salary filters."
        )

    tip = rng.choice(JOB_SEARCH_TIPS)
    return (
        "As a job seeker you can search the Avenue job board, save jobs, apply with your resume "
        f"and track every application from your dashboard. Tip: {tip}."
    )


def _respond_employer(query: str, session: SessionContext, rng: random.Random) -> str:
    if _has(query, "post", "vacanc", "publish"):
        return (
            "To post a job, open your employer dashboard and choose 'Post a Job'. Fill in the "
            "title, description, location and salary range, then publish it to the Avenue job board."
        )

    if _has(query, "applicant", "candidate", "review", "shortlist"):
        return (
            "Applicants for your vacancies appear under 'Applications' in your employer dashboard. "
            "From there you can review resumes, shortlist candidates and update each application's status."
        )

    return (
        f"Employers register once ({format_fee('employer')}) and can then post vacancies, manage "
        "their company profile and review applicants from the employer dashboard."
    )


def _respond_trainer(query: str, session: SessionContext, rng: random.Random) -> str:
    if _has(query, "create", "add", "start", "offer"):
        return (
            "Trainers can add a training programme from the trainer dashboard: describe the course, "
            "its schedule and capacity, and trainees will be able to enrol."
        )
    return (
        f"Trainers ({format_fee('trainer')} registration) offer training programmes on the platform, "
        "mentor trainees and follow their progress from the trainer dashboard."
    )


def _respond_trainee(query: str, session: SessionContext, rng: random.Random) -> str:
    if _has(query, "enrol", "enroll", "join", "sign up", "register"):
        return (
            f"Register as a Trainee ({format_fee('trainee')}), then browse the available training "
            "programmes from your dashboard and enrol in the ones that fit your goals."
        )
    return (
        "Trainees join training programmes run by our trainers to build job-ready skills. "
        "When you're ready, you can move to a Job Seeker account and start applying."
    )


def _respond_resume(query: str, session: SessionContext, rng: random.Random) -> str:
    if "upload" in query:
        return (
            "Upload your resume from the 'Resume' section of your dashboard. PDF and Word "
            "documents are accepted; the latest upload is the one employers see."
        )

    if _has(query, "review", "status", "approved", "rejected", "pending"):
        return (
            "Uploaded resumes are reviewed by our team. You'll see the review status (pending, "
            "approved or needs changes) in the 'Resume' section of your dashboard."
        )

    if _has(query, "tip", "advice", "improve"):
        tip = rng.choice(RESUME_TIPS)
        return f"Resume tip: {tip}. Would you like more resume tips?"

    if _has(query, "build", "create", "write", "make"):
        return (
            "Start with your contact details, then add work experience, education and skills. "
            "When it's ready, upload it from the 'Resume' section of your dashboard."
        )

    return (
        "A strong resume highlights your relevant skills and accomplishments. Upload yours from "
        "your dashboard so employers can see it when you apply."
    )


def _respond_avenue(query: str, session: SessionContext, rng: random.Random) -> str:
    if "filter" in query:
        return (
            "On the Avenue job board you can filter listings by location, job type, experience "
            "level, salary range and industry using the filter panel."
        )

    if _has(query, "categor", "industr"):
        categories = ", ".join(PLATFORM_INFO["categories"][:5])
        return (
            f"We list jobs across many industries including {categories}, and more. "
            "You can browse by category from the homepage or the Avenue job board."
        )

    return (
        "Avenue is our job board: every open vacancy is listed there. Search by keyword, job "
        "title or company name, and use filters to narrow down the results."
    )


def _respond_payment(query: str, session: SessionContext, rng: random.Random) -> str:
    provider = PLATFORM_INFO["payment_provider"]

    if "refund" in query:
        return (
            "Registration fees are one-time payments and are generally non-refundable. If you "
            f"were charged twice or believe a payment was made in error, email {PLATFORM_INFO['support_email']} "
            "with your payment reference and we'll look into it."
        )

    if "receipt" in query:
        return (
            "A receipt is generated for every successful payment. You can view and download it "
            "from the 'Payments' section of your dashboard."
        )

    if _has(query, "fail", "declin", "didnt go through", "not go through", "error"):
        return (
            f"If a payment failed, no money was taken by {provider}. Check your card or mobile money "
            "balance and try again from the payment page. If you were debited but your account isn't "
            "active after a few minutes, contact support with your payment reference."
        )

    if _has(query, "cost", "much", "price", "fee", "charge", "amount"):
        role = session.role
        lines = []
        if role:
            lines.append(
                f"As a {ROLES[role]['label']}, your one-time registration fee is {format_fee(role)}."
            )
            lines.append("")
        lines.append("Registration fees by role:")
        lines.append(_fee_lines())
        return "\n".join(lines)

    return (
        f"Payments are handled securely by {provider}. After registering, you'll be taken to the "
        "payment page where you can pay with a card or mobile money. Your account is activated "
        "as soon as the payment is confirmed."
    )


def _respond_email_verification(query: str, session: SessionContext, rng: random.Random) -> str:
    if "resend" in query or "send again" in query:
        return (
            "Click 'Resend verification email' on the login page and enter the address you "
            "registered with. A new link will be sent right away."
        )

    if _has(query, "didnt", "not receive", "never got", "havent received", "spam", "no email"):
        return (
            "Verification emails can take a few minutes. Check your spam or promotions folder. "
            "If it still hasn't arrived, use 'Resend verification email' on the login page."
        )

    if "expire" in query:
        return (
            "Verification links expire after a while for security. Request a fresh one with "
            "'Resend verification email' on the login page."
        )

    return (
        "After registering we send a verification link to your email address. Click it to "
        "activate your account; you won't be able to sign in until your email is verified."
    )


def _respond_platform_transition(query: str, session: SessionContext, rng: random.Random) -> str:
    # the role named last is the destination ("from job seeker to trainer")
    positions = {key: query.rfind(ROLES[key]["label"].lower()) for key in ROLES}
    named = [key for key, pos in positions.items() if pos >= 0]
    target = max(named, key=positions.get) if named else None
    lines = [
        "To move to a different role, open your dashboard settings and choose 'Change role'. "
        "Your profile and history stay with you.",
    ]
    if target:
        lines.append(
            f"Switching to {ROLES[target]['label']} requires that role's registration fee "
            f"({format_fee(target)}) if you haven't paid it already."
        )
    label = _role_label(session)
    if label:
        lines.append(f"You're currently signed up as a {label}.")
    return " ".join(lines)


def _respond_greeting(query: str, session: SessionContext, rng: random.Random) -> str:
    name = f" {session.username}" if session.username else ""
    role = session.role
    if role == "employer":
        focus = "your hiring"
    elif role == "trainer":
        focus = "your training programmes"
    elif role == "trainee":
        focus = "your training"
    else:
        focus = "your job search"
    return f"Hello{name}! How can I help with {focus} today?"


def _respond_help(query: str, session: SessionContext, rng: random.Random) -> str:
    return (
        "I can help you choose a role, search the Avenue job board, apply for jobs, upload "
        "your resume, understand registration payments, verify your email and reach our "
        "support team. What would you like to know?"
    )


def _respond_about_platform(query: str, session: SessionContext, rng: random.Random) -> str:
    features = "\n• ".join(PLATFORM_INFO["features"])
    categories = ", ".join(PLATFORM_INFO["categories"][:6])
    return (
        f"This is {PLATFORM_INFO['name']}, {PLATFORM_INFO['description']}. "
        f"Our platform offers {len(PLATFORM_INFO['features'])} main features:\n• {features}\n\n"
        f"We connect people across multiple industries including {categories}, and more."
    )


def _respond_contact(query: str, session: SessionContext, rng: random.Random) -> str:
    phone = PLATFORM_INFO["support_phone"]
    if _has(query, "admin", "administrator", "support"):
        return (
            "You can contact our admin team in several ways:\n\n"
            f"• Email: {PLATFORM_INFO['admin_email']}\n"
            f"• Phone: {phone} (Mon-Fri, 9AM-5PM)\n"
            "• Support ticket: Click the 'Support' link in the footer of any page"
        )

    if _has(query, "technical", "issue", "problem", "bug"):
        return (
            "For technical issues, please contact our technical support team:\n\n"
            f"• Email: {PLATFORM_INFO['support_email']}\n"
            f"• Phone: {phone}\n"
            "• Support ticket: Click 'Help' → 'Report a Problem' in the main menu"
        )

    return (
        "For any assistance, you can contact our support team through:\n\n"
        f"• Email: {PLATFORM_INFO['support_email']}\n"
        f"• Phone: {phone}\n"
        "• In-app: Click the 'Help' button in the main menu"
    )


def _respond_website(query: str, session: SessionContext, rng: random.Random) -> str:
    return (
        f"{PLATFORM_INFO['name']} is organised around a few areas: the Avenue job board for "
        "listings, your role-based dashboard for applications, resumes and training, and the "
        "Payments section for registration fees and receipts. Sign in to see everything for your role."
    )


# ---------------------------------------------------------------------------
# Rule table -- ordered by priority (more specific first)
# ---------------------------------------------------------------------------

# A role named in a role-change request is the target, not the topic
_ROLE_CHANGE = (
    "switch", "change my role", "change role", "change my account", "upgrade",
    "become an employer", "become a trainer", "become a trainee", "become a job seeker",
    "transition", "convert",
)

TOPIC_RULES: tuple[TopicRule, ...] = (
    TopicRule("role_selection", _respond_role_selection, keywords=(
        "which role", "what role", "choose a role", "choose my role", "select a role",
        "pick a role", "available roles", "different roles", "account type", "type of account", "kind of account",
    )),
    TopicRule("job_seeker", _respond_job_seeker, keywords=(
        "job seeker", "jobseeker", "find a job", "find work", "looking for work",
        "looking for a job", "get a job", "apply", "application", "interview", "career", "salary",
    ), excludes=_ROLE_CHANGE),
    TopicRule("employer", _respond_employer, keywords=(
        "employer", "post a job", "post a vacancy", "post jobs", "hire", "hiring",
        "recruit", "applicant", "candidates",
    ), excludes=_ROLE_CHANGE),
    TopicRule("trainer", _respond_trainer, keywords=(
        "trainer", "instructor", "mentor", "teach", "course",
    ), excludes=_ROLE_CHANGE),
    TopicRule("trainee", _respond_trainee, keywords=(
        "trainee", "training", "internship", "apprentice", "learn",
    ), excludes=_ROLE_CHANGE),
    TopicRule("resume", _respond_resume, keywords=(
        "resume", "curriculum vitae", "cover letter",
    ), words=("cv", "cvs")),
    TopicRule("avenue", _respond_avenue, keywords=(
        "avenue", "job board", "jobboard", "listing", "vacanc", "openings",
        "browse", "search", "find jobs", "jobs", "categor",
    )),
    TopicRule("payment", _respond_payment, keywords=(
        "payment", "pay", "cost", "price", "charge", "refund", "paystack",
        "mobile money", "momo", "receipt",
    ), words=("fee", "fees")),
    TopicRule("email_verification", _respond_email_verification, keywords=(
        "verify", "verification", "confirm my email", "confirmation email",
        "activation", "activate", "didnt get the email", "didnt receive",
    )),
    TopicRule("platform_transition", _respond_platform_transition, keywords=_ROLE_CHANGE),
    TopicRule("greeting", _respond_greeting, keywords=(
        "hello", "greetings", "good morning", "good afternoon", "good evening",
        "whats up", "how are you",
    ), words=("hi", "hey", "hiya", "howdy", "yo")),
    TopicRule("help", _respond_help, keywords=(
        "help", "assist", "guide", "what can you do",
    )),
    TopicRule("about_platform", _respond_about_platform, keywords=(
        "about", "what is", "who are you", "what do you do", "tell me", "mission",
    )),
    TopicRule("contact", _respond_contact, keywords=(
        "contact", "admin", "administrator", "support", "help desk", "helpdesk",
        "phone", "email", "reach you", "reach out", "get in touch", "talk to", "speak to",
    )),
    TopicRule("website", _respond_website, keywords=(
        "website", "site", "platform", "portal", "features",
    ), words=("app",)),
)


def find_rule(normalized_query: str, rules=TOPIC_RULES) -> TopicRule | None:
    """First rule whose keywords hit the query."""
    if not normalized_query.strip():
        return None
    return first_match(rules, lambda rule: rule.matches(normalized_query))


def detect_topic(normalized_query: str, rules=TOPIC_RULES) -> str | None:
    """Name of the winning rule, or None."""
    rule = find_rule(normalized_query, rules)
    return rule.name if rule else None


def route(normalized_query: str, session: SessionContext | None = None,
          rng: random.Random | None = None, rules=TOPIC_RULES) -> str | None:
    """Reply from the first matching topic rule, or None if nothing matches."""
    rule = find_rule(normalized_query, rules)
    if rule is None:
        return None
    return rule.responder(normalized_query, session or SessionContext(), rng or random.Random())
