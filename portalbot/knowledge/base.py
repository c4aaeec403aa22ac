"""Static job-portal knowledge used by the assistant.

Everything here is read-only at runtime and shared across all sessions.
FAQ order matters: the matcher returns the first qualifying entry.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class KnowledgeEntry:
    question: str
    answer: str


PLATFORM_INFO: dict = {
    "name": "Job Portal",
    "description": "a platform connecting job seekers, employers, trainers and trainees",
    "features": (
        "Job listings from various industries on the Avenue job board",
        "Role-based dashboards for job seekers, employers, trainers and trainees",
        "Resume upload and review",
        "Application tracking",
        "Job alerts and recommendations",
        "Company profiles",
    ),
    "categories": (
        "Technology", "Healthcare", "Finance", "Education",
        "Marketing", "Engineering", "Sales", "Customer Service",
        "Administration", "Management", "Hospitality", "Retail",
    ),
    "currency": "GHS",
    "payment_provider": "Paystack",
    "admin_email": "admin@major.com",
    "support_email": "support@major.com",
    "support_phone": "(+233) 247 466 205",
}

# Registration fees mirror the platform's payment settings defaults (Ghana cedis)
ROLES: dict[str, dict] = {
    "job_seeker": {
        "label": "Job Seeker",
        "fee": 50,
        "pitch": "find and apply for jobs, upload your resume and track applications",
    },
    "employer": {
        "label": "Employer",
        "fee": 100,
        "pitch": "post vacancies on the Avenue job board and review applicants",
    },
    "trainer": {
        "label": "Trainer",
        "fee": 100,
        "pitch": "offer training programmes and mentor trainees",
    },
    "trainee": {
        "label": "Trainee",
        "fee": 50,
        "pitch": "join training programmes and build job-ready skills",
    },
}

_ROLE_ALIASES: dict[str, str] = {
    "jobseeker": "job_seeker",
    "job_seeker": "job_seeker",
    "job seeker": "job_seeker",
    "job-seeker": "job_seeker",
    "seeker": "job_seeker",
    "candidate": "job_seeker",
    "employer": "employer",
    "company": "employer",
    "recruiter": "employer",
    "trainer": "trainer",
    "instructor": "trainer",
    "trainee": "trainee",
    "student": "trainee",
}


def normalize_role(raw) -> str | None:
    """Map a client-supplied role spelling to a ROLES key (None if unknown)."""
    if not raw or not isinstance(raw, str):
        return None
    return _ROLE_ALIASES.get(raw.strip().lower())


def format_fee(role: str) -> str:
    info = ROLES[role]
    return f"{PLATFORM_INFO['currency']} {info['fee']}"


FAQS: tuple[KnowledgeEntry, ...] = (
    KnowledgeEntry(
        "How do I create an account?",
        "Click the 'Register' button in the top right corner, choose your role "
        "(Job Seeker, Employer, Trainer or Trainee) and fill out the required information. "
        "We'll send you an email to verify your address.",
    ),
    KnowledgeEntry(
        "How much does it cost to register?",
        "Registration is a one-time fee: GHS 50 for Job Seekers and Trainees, and GHS 100 "
        "for Employers and Trainers. Payment is processed securely through Paystack.",
    ),
    KnowledgeEntry(
        "How do I search for jobs?",
        "Use the search bar on the homepage or open the Avenue job board to browse all listings.",
    ),
    KnowledgeEntry(
        "How do I apply for a job?",
        "Click on a job listing to view details, then click the 'Apply Now' button.",
    ),
    KnowledgeEntry(
        "Can I save jobs for later?",
        "Yes, click the bookmark icon on any job listing to save it to your favorites.",
    ),
    KnowledgeEntry(
        "How do I update my profile?",
        "Go to your dashboard and click on the 'Profile' tab to edit your information.",
    ),
    KnowledgeEntry(
        "What should I include in my resume?",
        "Include your contact information, work experience, education, skills, and any "
        "relevant certifications or achievements.",
    ),
    KnowledgeEntry(
        "How can I track my applications?",
        "Check the 'Applications' section in your dashboard to see the status of jobs you've applied for.",
    ),
    KnowledgeEntry(
        "How do I set job alerts?",
        "Create job alerts by specifying your preferences in the 'Job Alerts' section of your dashboard.",
    ),
    KnowledgeEntry(
        "What are the top job categories?",
        "Popular categories include Technology, Healthcare, Finance, Education, Marketing, "
        "Engineering, and Customer Service.",
    ),
    KnowledgeEntry(
        "How do I filter job results?",
        "Use the filter options on the Avenue job board to narrow results by location, salary, "
        "job type, experience level, and more.",
    ),
    KnowledgeEntry(
        "How do I verify my email address?",
        "Open the verification email we sent when you registered and click the link inside. "
        "If it has expired, use 'Resend verification email' on the login page.",
    ),
    KnowledgeEntry(
        "How do I post a job?",
        "Employers can post a vacancy from the employer dashboard: open 'Post a Job', fill in "
        "the details and publish it to the Avenue job board.",
    ),
    KnowledgeEntry(
        "Will companies see my profile?",
        "Companies can view your profile when you apply for their jobs, but not before "
        "you've submitted an application.",
    ),
)


JOB_SEARCH_TIPS: tuple[str, ...] = (
    "Update your resume before applying to highlight relevant experience",
    "Customize your cover letter for each application",
    "Research companies before interviews",
    "Set up job alerts to get notified of new opportunities",
    "Network with professionals in your target industry",
    "Follow up after submitting applications",
)

RESUME_TIPS: tuple[str, ...] = (
    "Keep your resume concise and relevant",
    "Highlight your accomplishments, not just job duties",
    "Use action verbs to describe your experience",
    "Tailor your resume to each job application",
    "Include measurable achievements when possible",
    "Proofread for spelling and grammar errors",
)

INTERVIEW_TIPS: tuple[str, ...] = (
    "Research the company thoroughly",
    "Practice answers to common questions",
    "Prepare questions to ask the interviewer",
    "Dress professionally and arrive early",
    "Send a thank-you note after the interview",
)

_WELCOME_DEFAULT = "Our conversation has been cleared. How can I help you now?"

WELCOME_MESSAGES: dict[str, str] = {
    "job_seeker": "Our conversation has been cleared. Ready to continue your job search? "
                  "Ask me about finding jobs, applying, or your resume.",
    "employer": "Our conversation has been cleared. Need help posting a job or reviewing applicants?",
    "trainer": "Our conversation has been cleared. Ask me anything about running training programmes.",
    "trainee": "Our conversation has been cleared. Ask me about training programmes or moving into a job search.",
}


def welcome_message(role: str | None) -> str:
    """Greeting sent after a conversation is cleared, tailored to the role."""
    return WELCOME_MESSAGES.get(role or "", _WELCOME_DEFAULT)
