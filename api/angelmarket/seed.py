import logging
import random
from typing import Optional

from sqlalchemy import func
from sqlmodel import Session, select

from .models import Category, Project, ProjectStatus, User, UserRole
from .utils import utcnow

logger = logging.getLogger(__name__)

# (title, tagline, category, description, problem, solution, min_investment, valuation_cap)
SAMPLE_PROJECTS = [
    (
        "PayFlow Africa",
        "Cross-border payments made simple for African SMEs",
        "FinTech",
        "PayFlow Africa enables seamless cross-border payments for small and medium businesses across the African continent, reducing transaction costs by up to 70%.",
        "African SMEs lose billions annually to high cross-border transaction fees and slow payment processing times.",
        "Our blockchain-based payment infrastructure provides instant, low-cost transfers between African nations.",
        25000, 2000000,
    ),
    (
        "MediConnect",
        "AI-powered telemedicine for rural communities",
        "HealthTech",
        "MediConnect brings quality healthcare to underserved rural areas through AI diagnostics and video consultations with certified doctors.",
        "60% of rural populations lack access to qualified healthcare professionals.",
        "Mobile-first platform with AI triage, connecting patients with specialists via video calls.",
        50000, 3000000,
    ),
    (
        "LearnPath",
        "Personalized skills training for the future workforce",
        "EdTech",
        "AI-driven learning platform that creates personalized upskilling paths based on career goals and market demand.",
        "Skills gap costing global economy $8.5 trillion in lost productivity.",
        "Adaptive learning algorithms that match learners with in-demand skills and job opportunities.",
        30000, 2500000,
    ),
    (
        "FarmSense",
        "IoT precision farming for smallholder farmers",
        "AgriTech",
        "Affordable IoT sensors and AI analytics helping small-scale farmers optimize crop yields and reduce water usage.",
        "Smallholder farmers lose 40% of crops due to inefficient farming practices.",
        "Low-cost sensor network with SMS-based insights for farmers without smartphones.",
        20000, 1500000,
    ),
    (
        "SolarShare",
        "Community solar microgrids for energy independence",
        "CleanTech",
        "Enabling communities to build, own, and trade solar energy through tokenized microgrids.",
        "600 million Africans lack reliable electricity access.",
        "Peer-to-peer energy trading platform with community-owned solar installations.",
        75000, 5000000,
    ),
    (
        "PropChain",
        "Fractional real estate investment on blockchain",
        "PropTech",
        "Democratizing real estate investment by enabling fractional ownership of premium properties.",
        "Real estate investment requires significant capital, excluding most investors.",
        "Tokenized property shares starting from $100, with automated rental income distribution.",
        100000, 8000000,
    ),
    (
        "QuickMart",
        "15-minute grocery delivery for urban areas",
        "E-Commerce",
        "Dark store network enabling ultra-fast grocery delivery to urban consumers.",
        "Traditional e-commerce takes days; consumers want instant gratification.",
        "Network of micro-fulfillment centers within 2km of customers.",
        150000, 10000000,
    ),
    (
        "TeamSync",
        "All-in-one remote team management platform",
        "SaaS",
        "Unified workspace combining project management, communication, and HR tools for distributed teams.",
        "Remote teams use 10+ different tools, causing productivity loss.",
        "Integrated platform with async video, task management, and performance tracking.",
        40000, 3500000,
    ),
    (
        "VisionAI",
        "Computer vision for retail analytics",
        "AI/ML",
        "AI-powered cameras that provide real-time customer behavior analytics for retail stores.",
        "Retailers lack insight into in-store customer behavior and preferences.",
        "Privacy-preserving computer vision that tracks traffic patterns and engagement.",
        80000, 6000000,
    ),
    (
        "SmartFactory",
        "Industrial IoT for manufacturing efficiency",
        "IoT",
        "End-to-end IoT platform for predictive maintenance and production optimization.",
        "Unplanned downtime costs manufacturers $50 billion annually.",
        "Sensor-based monitoring with ML-driven failure prediction.",
        120000, 9000000,
    ),
    (
        "CyberShield",
        "AI-powered threat detection for SMBs",
        "Cybersecurity",
        "Enterprise-grade cybersecurity made affordable for small businesses.",
        "43% of cyberattacks target small businesses; most can't afford protection.",
        "Automated threat detection and response at 1/10th the cost of enterprise solutions.",
        60000, 4500000,
    ),
    (
        "FleetTrack",
        "Last-mile delivery optimization platform",
        "Logistics",
        "AI route optimization and real-time tracking for delivery fleets.",
        "Inefficient routes cost logistics companies 30% more in fuel and time.",
        "Dynamic routing algorithms that adapt to traffic and delivery windows.",
        45000, 3000000,
    ),
]

def generate_pitch(title: str, problem: str, solution: str) -> str:
    return f"""# {title} - Investor Pitch

## The Problem
{problem}

## Our Solution
{solution}

## Market Opportunity
- Total Addressable Market: $10B+
- Growing at 25% annually
- First-mover advantage in key markets

## Traction
- 1,000+ beta users
- 15% month-over-month growth
- Key partnerships in development

## The Team
Experienced founders with background in technology and the target industry.

## The Ask
We're raising angel funding to:
- Scale our technology platform
- Expand market presence
- Build out the core team

Join us in transforming this industry!"""

def seed_projects(session: Session, developer_email: Optional[str] = None, rng: Optional[random.Random] = None) -> int:
    """Create approved sample projects owned by an existing developer.

    Does nothing when any project exists or no developer account is found.
    """
    if session.exec(select(func.count()).select_from(Project)).one():
        return 0
    stmt = select(User).where(User.role == UserRole.DEVELOPER)
    if developer_email:
        stmt = stmt.where(User.email == developer_email.strip().lower())
    developer = session.exec(stmt.order_by(User.id)).first()
    if not developer:
        logger.warning("no developer users found, skipping project seeding")
        return 0
    categories = {c.name: c for c in session.exec(select(Category)).all()}
    if not categories:
        logger.warning("no categories found, skipping project seeding")
        return 0

    rng = rng or random.Random()
    now = utcnow()
    created = 0
    for title, tagline, category_name, description, problem, solution, min_investment, cap in SAMPLE_PROJECTS:
        category = categories.get(category_name)
        if not category:
            continue
        session.add(Project(
            developer_id=developer.id,
            category_id=category.id,
            title=title,
            tagline=tagline,
            description=description,
            problem=problem,
            solution=solution,
            pitch_content=generate_pitch(title, problem, solution),
            min_investment=float(min_investment),
            max_investment=float(min_investment * 10),
            valuation_cap=float(cap),
            equity_offered=float(rng.randint(5, 19)),
            status=ProjectStatus.APPROVED,
            approved_at=now,
        ))
        created += 1
    session.commit()
    logger.info("seeded %d sample projects for developer %s", created, developer.id)
    return created
