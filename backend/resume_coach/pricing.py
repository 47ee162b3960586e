from typing import List, Optional

from pydantic import BaseModel

# Credit costs for AI-powered features
CREDIT_COSTS = {
    'JOBS': {
        'AI_ANALYSIS': 3,
        'AI_SPECIALIZED_RESUME': 8,
        'AI_PREPARATION_GUIDE': 3,
        'PRACTICE_WITH_AI': 12,
    },
    'RESUME': {
        'GENERATE_SUMMARY': 2,
        'GENERATE_DESCRIPTION': 2,
        'GENERATE_ACHIEVEMENTS': 2,
        'SUGGEST_SKILLS': 2,
        'GENERATE_PROJECT_DESCRIPTION': 2,
        'GENERATE_PROJECT_TECH_STACK': 2,
        'GENERATE_PROJECT_ACHIEVEMENTS': 2,
        'GENERATE_AWARD_DESCRIPTION': 2,
        'ATS_ANALYZE_RESUME': 3,
        'DOWNLOAD_RESUME': 1,
    },
    'COVER_LETTER': {
        'GENERATE_LETTER': 4,
        'ANALYZE_JOB': 2,
    },
}


class CreditPackage(BaseModel):
    id: str
    name: str
    credits: int
    price: float
    tag: Optional[str] = None
    discount: Optional[int] = None
    most_popular: bool = False


CREDIT_PACKAGES: List[CreditPackage] = [
    CreditPackage(id='basic', name='Basic', credits=50, price=4.99),
    CreditPackage(id='standard', name='Standard', credits=125, price=9.99, tag='Most Popular', most_popular=True),
    CreditPackage(id='premium', name='Premium', credits=300, price=19.99, discount=20),
    CreditPackage(id='ultimate', name='Ultimate', credits=700, price=39.99, discount=30),
]


def get_credit_package(package_id: str) -> Optional[CreditPackage]:
    return next((package for package in CREDIT_PACKAGES if package.id == package_id), None)
