"""
Tests for CaseStudyScorer (case_study_scorer.py).
"""
import pytest
from factories import COURSE_ID

from eduroom_engine.case_study_scorer import CaseStudyScorer
from eduroom_engine.errors import EmptyAssessment
from eduroom_engine.models import CaseStudy


@pytest.fixture
def case_studies():
    return [
        CaseStudy(id=1, course_id=COURSE_ID, problem_statement="Churn analysis",
                  answer_keywords=["cohort", "retention", "dashboard", "sql"]),
        CaseStudy(id=2, course_id=COURSE_ID, problem_statement="Sales forecast",
                  answer_keywords=["seasonality", "regression", "baseline"]),
    ]


class TestCaseStudyScorer:
    def test_both_pass(self, case_studies):
        responses = {
            1: "I built a cohort table in SQL and a retention dashboard.",
            2: "Removed seasonality, fitted a regression against a naive baseline.",
        }
        result = CaseStudyScorer().score(COURSE_ID, case_studies, responses)
        assert result.case_study_score == 100.0
        assert result.all_passed

    def test_two_keywords_not_enough(self, case_studies):
        responses = {1: "cohort and retention only", 2: "seasonality regression baseline"}
        result = CaseStudyScorer().score(COURSE_ID, case_studies, responses)
        assert result.case_study_score == 50.0
        assert not result.all_passed

    def test_keywords_case_insensitive(self, case_studies):
        responses = {2: "SEASONALITY, Regression, BaseLine"}
        result = CaseStudyScorer().score(COURSE_ID, case_studies, responses)
        assert result.feedback[1].passed

    def test_missing_response_fails(self, case_studies):
        result = CaseStudyScorer().score(COURSE_ID, case_studies, {})
        assert result.case_study_score == 0.0

    def test_repeated_keyword_counts_once(self, case_studies):
        responses = {1: "cohort cohort cohort cohort"}
        result = CaseStudyScorer().score(COURSE_ID, case_studies, responses)
        assert result.feedback[0].matched_keywords == ["cohort"]
        assert not result.feedback[0].passed

    def test_short_keyword_list_requires_all(self):
        cs = [CaseStudy(id=5, course_id=COURSE_ID, problem_statement="p",
                        answer_keywords=["alpha", "beta"])]
        scorer = CaseStudyScorer(min_keyword_hits=3)
        assert scorer.score(COURSE_ID, cs, {5: "alpha beta"}).all_passed
        assert not scorer.score(COURSE_ID, cs, {5: "alpha"}).all_passed

    def test_no_keywords_never_passes(self):
        cs = [CaseStudy(id=6, course_id=COURSE_ID, problem_statement="p", answer_keywords=[])]
        assert CaseStudyScorer().score(COURSE_ID, cs, {6: "anything"}).case_study_score == 0.0

    def test_no_case_studies_raises(self):
        with pytest.raises(EmptyAssessment):
            CaseStudyScorer().score(COURSE_ID, [], {})

    def test_invalid_threshold(self):
        with pytest.raises(ValueError):
            CaseStudyScorer(min_keyword_hits=0)


class TestKeywordStorage:
    def test_split_keywords(self):
        assert CaseStudy.split_keywords(" sql, dashboard ,,kpi") == ["sql", "dashboard", "kpi"]

    def test_split_empty(self):
        assert CaseStudy.split_keywords(None) == []

    def test_round_trip_through_db(self, db):
        db.add_case_study(COURSE_ID, "Churn", ["cohort", "retention"])
        (cs,) = db.list_case_studies(COURSE_ID)
        assert cs.answer_keywords == ["cohort", "retention"]
